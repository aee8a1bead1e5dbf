from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TaskCategory(str, Enum):
    LEARNING = "Learning"
    PRACTICE = "Practice"
    NETWORKING = "Networking"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PENDING = "pending"


class WeeklyTask(BaseModel):
    id: str
    text: str = Field(min_length=1)
    is_completed: bool = False
    category: TaskCategory


class QuizQuestion(BaseModel):
    id: int
    text: str = Field(min_length=1)
    options: list[str]
    correct_option_index: int = Field(ge=0, le=3)

    @field_validator("options")
    @classmethod
    def _four_options(cls, value: list[str]) -> list[str]:
        if len(value) != 4:
            raise ValueError("quiz questions need exactly 4 options")
        return value


class WeeklyQuiz(BaseModel):
    questions: list[QuizQuestion] = Field(default_factory=list)
    user_answers: list[int] | None = None
    score: int | None = None
    passed: bool | None = None

    @property
    def attempted(self) -> bool:
        return self.score is not None


class WeeklyPlan(BaseModel):
    week_number: int = Field(ge=1)
    title: str
    tasks: list[WeeklyTask] = Field(default_factory=list)
    status: PlanStatus = PlanStatus.ACTIVE
    completion_rate: int = Field(default=0, ge=0, le=100)
    ai_feedback: str | None = None
    quiz: WeeklyQuiz | None = None


class PublicQuizQuestion(BaseModel):
    id: int
    text: str
    options: list[str]


class PublicQuiz(BaseModel):
    """Quiz as shown to the learner while answering: no answer key."""

    questions: list[PublicQuizQuestion]

    @classmethod
    def from_quiz(cls, quiz: WeeklyQuiz) -> "PublicQuiz":
        return cls(
            questions=[PublicQuizQuestion(id=q.id, text=q.text, options=q.options) for q in quiz.questions]
        )


class TrackerView(BaseModel):
    id: str
    user_id: str
    roadmap_id: str
    career_title: str
    current_phase_index: int
    current_phase: str
    total_weeks_completed: int
    overall_progress_score: int
    state: str
    history: list[WeeklyPlan]
    current_week: WeeklyPlan
    pending_quiz: PublicQuiz | None = None


class StartTrackerRequest(BaseModel):
    roadmap_id: str


class QuizAnswersRequest(BaseModel):
    answers: list[int]

    @field_validator("answers")
    @classmethod
    def _option_indexes(cls, value: list[int]) -> list[int]:
        if any(answer < 0 or answer > 3 for answer in value):
            raise ValueError("answers must be option indexes between 0 and 3")
        return value


class SubmitWeekResponse(BaseModel):
    outcome: str  # "quiz_pending" | "advanced"
    tracker: TrackerView
    quiz: PublicQuiz | None = None
    score_delta: int | None = None
    directive: str | None = None
    finalized_week: WeeklyPlan | None = None
