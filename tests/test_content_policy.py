from __future__ import annotations

import json

import httpx
import pytest

from psychx.agents.adaptation import Directive
from psychx.agents.content import LLMContentGenerator
from psychx.agents.prompts import weekly_plan_prompt
from psychx.core.json_parser import parse_llm_json
from psychx.core.llm_provider import BaseLLMProvider, NullLLMProvider


class ScriptedProvider(BaseLLMProvider):
    provider_name = "scripted"

    def __init__(self, reply=None, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt, response_schema=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        text = self.reply if isinstance(self.reply, str) or self.reply is None else json.dumps(self.reply)
        return text, self._usage(prompt, text or "")


def test_parse_llm_json_handles_fences_and_prose():
    assert parse_llm_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_llm_json('Sure! Here it is: [1, 2] hope that helps') == [1, 2]
    assert parse_llm_json("not json at all") == {}
    assert parse_llm_json(None) == {}


@pytest.mark.asyncio
async def test_weekly_plan_keeps_valid_tasks_and_fixes_ids():
    provider = ScriptedProvider(
        {
            "week_title": "Python basics",
            "ai_feedback": "Nice start.",
            "tasks": [
                {"id": "a", "text": "Read chapter 1", "category": "Learning"},
                {"id": "a", "text": "Solve 5 problems", "category": "Practice"},
                {"id": "c", "text": "", "category": "Practice"},
                {"id": "d", "text": "Dance", "category": "Leisure"},
                {"text": "Message a mentor", "category": "Networking"},
            ],
        }
    )
    plan = await LLMContentGenerator(provider).generate_weekly_plan("Data Scientist", "Foundation", 3)

    assert plan.week_number == 3
    assert plan.title == "Python basics"
    assert [t.text for t in plan.tasks] == ["Read chapter 1", "Solve 5 problems", "Message a mentor"]
    assert len({t.id for t in plan.tasks}) == 3
    assert not any(t.is_completed for t in plan.tasks)


@pytest.mark.asyncio
async def test_upstream_failures_become_empty_results():
    failing = LLMContentGenerator(ScriptedProvider(error=httpx.ConnectError("down")))
    garbage = LLMContentGenerator(ScriptedProvider("I cannot help with that."))
    silent = LLMContentGenerator(NullLLMProvider())

    for generator in (failing, garbage, silent):
        assert await generator.generate_weekly_plan("Chef", "Foundation", 1) is None
        assert (await generator.generate_weekly_quiz(["Knife skills"])).questions == []
        assert await generator.generate_roadmap("Chef", "12th", 4) == []
        assert await generator.generate_questions(["Creative"], "12th", []) == []


@pytest.mark.asyncio
async def test_quiz_is_trimmed_to_three_valid_questions():
    question = {"text": "Q", "options": ["a", "b", "c", "d"], "correct_option_index": 1}
    provider = ScriptedProvider(
        {
            "questions": [
                {**question, "id": 9},
                {**question, "id": 9, "options": ["only", "three", "options"]},
                {**question, "id": 7, "correct_option_index": 5},
                {**question, "id": 4},
                {**question, "id": 2},
                {**question, "id": 1},
            ]
        }
    )
    quiz = await LLMContentGenerator(provider).generate_weekly_quiz(["Read chapter 1"])

    assert [q.id for q in quiz.questions] == [1, 2, 3]
    assert quiz.score is None


@pytest.mark.asyncio
async def test_quiz_not_requested_without_learning_tasks():
    provider = ScriptedProvider({"questions": []})
    quiz = await LLMContentGenerator(provider).generate_weekly_quiz([])
    assert quiz.questions == []
    assert provider.prompts == []


def test_weekly_prompt_carries_directive_context():
    previous = {
        "week_number": 2,
        "completion_rate": 40,
        "tasks": [
            {"id": "t1", "text": "Done task", "is_completed": True, "category": "Practice"},
            {"id": "t2", "text": "Skipped task", "is_completed": False, "category": "Learning"},
        ],
        "quiz": None,
    }
    first = weekly_plan_prompt("Chef", "Foundation", 1, None, None)
    reduced = weekly_plan_prompt("Chef", "Foundation", 3, previous, Directive.REDUCED)

    assert "very first week" in first
    assert "Directive: Reduced" in reduced
    assert "Skipped task" in reduced
    assert "Done task" not in reduced
