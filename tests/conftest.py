from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - in-memory SQLite instead of Postgres
# - no external LLM traffic; generation goes through the stub below
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LLM_PROVIDER", "none")
os.environ.setdefault("INFLIGHT_BACKEND", "memory")
os.environ["SEED_DEMO_DATA"] = "true"
os.environ.setdefault("GATEWAY_AUTH_ENABLED", "false")

from psychx.agents.base import ContentGenerator  # noqa: E402
from psychx.api.deps import get_content_generator  # noqa: E402
from psychx.main import app  # noqa: E402
from psychx.memory.database import build_engine, build_session_factory  # noqa: E402
from psychx.models.base import Base  # noqa: E402
from psychx.schemas.assessment import AssessmentQuestion, CareerRecommendation  # noqa: E402
from psychx.schemas.progress import QuizQuestion, WeeklyPlan, WeeklyQuiz, WeeklyTask  # noqa: E402
from psychx.schemas.roadmap import RoadmapStep  # noqa: E402

STUB_TASK_CATEGORIES = ("Learning", "Learning", "Practice", "Practice", "Networking")


class StubContentGenerator(ContentGenerator):
    """Deterministic generator: 5-task weeks, 3-question quizzes whose answer is always option 0."""

    def __init__(self):
        self.plan_calls: list[dict] = []
        self.quiz_calls: list[list[str]] = []
        self.fail_plans = 0
        self.plan_delay_seconds = 0.0
        self.quiz_question_count = 3
        self.task_count = len(STUB_TASK_CATEGORIES)

    async def generate_questions(self, categories, student_class, previous_answers):
        start = len(previous_answers) + 1
        return [
            AssessmentQuestion(id=start + i, text=f"Question {start + i}", type="scale", category=categories[0])
            for i in range(5)
        ]

    async def analyze_profile(self, profile):
        return [
            CareerRecommendation(career_title=title, aptitude_score=score)
            for title, score in (("Data Scientist", 88), ("Product Manager", 74), ("Game Designer", 61))
        ]

    async def generate_roadmap(self, career_title, current_class, years):
        return [
            RoadmapStep(phase=name, duration="1 Year", milestones=[f"{name} milestone"], resources=["NPTEL"])
            for name in ("Foundation", "Undergraduate Studies", "Specialization", "Job Hunt")
        ]

    async def generate_weekly_plan(self, career_title, phase, week_number, previous_plan=None, directive=None):
        self.plan_calls.append(
            {
                "career_title": career_title,
                "phase": phase,
                "week_number": week_number,
                "previous_plan": previous_plan,
                "directive": directive,
            }
        )
        if self.plan_delay_seconds:
            await asyncio.sleep(self.plan_delay_seconds)
        if self.fail_plans > 0:
            self.fail_plans -= 1
            return None
        categories = [STUB_TASK_CATEGORIES[i % len(STUB_TASK_CATEGORIES)] for i in range(self.task_count)]
        return WeeklyPlan(
            week_number=week_number,
            title=f"{phase} week {week_number}",
            tasks=[
                WeeklyTask(id=f"w{week_number}-t{i + 1}", text=f"{category} task {i + 1}", category=category)
                for i, category in enumerate(categories)
            ],
            ai_feedback="Keep going.",
        )

    async def generate_weekly_quiz(self, task_texts):
        self.quiz_calls.append(list(task_texts))
        return WeeklyQuiz(
            questions=[
                QuizQuestion(id=i + 1, text=f"About {task_texts[0]}?", options=["a", "b", "c", "d"], correct_option_index=0)
                for i in range(self.quiz_question_count)
            ]
        )


@pytest.fixture
def stub_generator() -> StubContentGenerator:
    return StubContentGenerator()


@pytest_asyncio.fixture
async def db_session():
    engine = build_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = build_session_factory(engine)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(scope="session")
def api_generator() -> StubContentGenerator:
    return StubContentGenerator()


@pytest.fixture(scope="session")
def client(api_generator) -> TestClient:
    app.dependency_overrides[get_content_generator] = lambda: api_generator
    with TestClient(app) as tc:
        yield tc
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def login(client: TestClient):
    def _login(email: str, password: str) -> dict:
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _login
