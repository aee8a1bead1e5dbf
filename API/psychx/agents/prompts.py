import json

from psychx.agents.adaptation import DIRECTIVE_GUIDANCE, Directive

QUESTION_BATCH_SIZE = 5

QUESTIONS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "INTEGER"},
            "text": {"type": "STRING"},
            "type": {"type": "STRING", "enum": ["scale", "multiple_choice", "text"]},
            "options": {"type": "ARRAY", "items": {"type": "STRING"}},
            "category": {"type": "STRING"},
        },
        "required": ["id", "text", "type", "category"],
    },
}

RECOMMENDATIONS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "recommendations": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "career_title": {"type": "STRING"},
                    "description": {"type": "STRING"},
                    "reason_why_chosen": {"type": "STRING"},
                    "aptitude_score": {"type": "INTEGER"},
                    "learning_curve": {"type": "STRING"},
                    "reality_check": {
                        "type": "OBJECT",
                        "properties": {
                            "is_realistic": {"type": "BOOLEAN"},
                            "feasibility_rating": {"type": "STRING", "enum": ["High", "Medium", "Low"]},
                            "verdict": {"type": "STRING"},
                            "financial_gap": {"type": "STRING"},
                            "location_verdict": {"type": "STRING"},
                        },
                    },
                    "immediate_next_step": {"type": "STRING"},
                },
                "required": ["career_title"],
            },
        }
    },
}

ROADMAP_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "phase": {"type": "STRING"},
            "duration": {"type": "STRING"},
            "milestones": {"type": "ARRAY", "items": {"type": "STRING"}},
            "resources": {"type": "ARRAY", "items": {"type": "STRING"}},
            "location_advice": {"type": "STRING"},
        },
        "required": ["phase", "duration", "milestones", "resources", "location_advice"],
    },
}

WEEKLY_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "week_title": {"type": "STRING"},
        "ai_feedback": {"type": "STRING"},
        "tasks": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "text": {"type": "STRING"},
                    "category": {"type": "STRING", "enum": ["Learning", "Practice", "Networking"]},
                },
                "required": ["id", "text", "category"],
            },
        },
    },
    "required": ["week_title", "tasks", "ai_feedback"],
}

QUIZ_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "questions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "INTEGER"},
                    "text": {"type": "STRING"},
                    "options": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "correct_option_index": {"type": "INTEGER"},
                },
                "required": ["id", "text", "options", "correct_option_index"],
            },
        }
    },
}


def questions_prompt(categories: list[str], student_class: str, previous_answers: list[dict]) -> str:
    fields = ", ".join(categories)
    batch_number = len(previous_answers) // QUESTION_BATCH_SIZE + 1
    if previous_answers:
        context = (
            f"This is batch {batch_number} of the assessment.\n"
            f"Answers so far:\n{json.dumps(previous_answers, indent=2)}\n"
            "Refine the questioning from these answers. Where the student was unsure or weak, switch to "
            "psychological questions that uncover why (no interest or no exposure). Where they were keen, "
            "ask a deeper situational question that shows how they think."
        )
    else:
        context = (
            f"This is batch 1. Cover the selected fields ({fields}) broadly and gauge mentality, "
            "interest and willingness to learn."
        )
    return (
        f"You are a career counselor talking to a class {student_class or 'unknown'} student.\n"
        "Run a psychometric and aptitude discovery. Act as a mentor, not an examiner.\n"
        f"Selected fields: {fields}\n\n"
        f"{context}\n\n"
        "Rules:\n"
        "- No textbook definitions.\n"
        "- About 40% mentality (resilience, patience, curiosity, stress tolerance), 40% interest "
        "(A vs B scenarios), 20% conceptual domain intuition.\n"
        "- Questions must be self-contained; situational options must be distinct behaviours.\n"
        "- Scale questions use 1 = strongly disagree and 5 = strongly agree.\n"
        "- Every multiple_choice question ends with an \"I don't know\" option.\n"
        f"Generate exactly {QUESTION_BATCH_SIZE} questions mixing 'scale', 'multiple_choice' and 'text'."
    )


def recommendations_prompt(profile: dict) -> str:
    return (
        "You are a senior career strategist.\n"
        f"Class: {profile.get('student_class', '')}\n"
        f"Budget: INR {profile.get('yearly_budget_inr')}/year\n"
        f"Travel willingness: {profile.get('willingness_to_travel')}\n"
        f"Current location: {profile.get('location_current')}\n"
        f"Years to invest: {profile.get('years_to_invest')}\n"
        f"Fields of interest: {', '.join(profile.get('categories', []))}\n"
        f"Assessment answers: {json.dumps(profile.get('answers', []))}\n\n"
        "Recommend exactly 3 careers weighted 70% on mentality, personality and interest and 30% on "
        "technical knowledge: the best psychological fit, a strategic bet balancing skills with demand, "
        "and a high-reward moonshot. Be honest about lifestyle and struggle. Score aptitude 0-100 strictly "
        "and judge feasibility against the budget and location constraints."
    )


def roadmap_prompt(career_title: str, current_class: str, years: int) -> str:
    return (
        f"Create a step-by-step roadmap for becoming a {career_title} in India.\n"
        f"Current status: class {current_class or 'unknown'} student. Time horizon: {years} years.\n"
        "Generate 4-6 distinct phases. For each give the phase name, a duration label, 3-4 concrete "
        "milestones, named resources (exams, books, courses, portals) and location advice naming "
        "relevant Indian cities or hubs."
    )


def weekly_plan_prompt(
    career_title: str,
    phase: str,
    week_number: int,
    previous_plan: dict | None,
    directive: Directive | None,
) -> str:
    if previous_plan is None or directive is None:
        context = (
            "This is the very first week. Start with foundational, easy wins that build momentum, "
            "drawn from the first milestones of the phase."
        )
    else:
        tasks = previous_plan.get("tasks", [])
        if directive == Directive.REDUCED:
            tasks = [t for t in tasks if not t.get("is_completed")]
        quiz = previous_plan.get("quiz") or {}
        context = (
            f"Directive: {directive.value}. {DIRECTIVE_GUIDANCE[directive]}\n"
            f"Last week (week {previous_plan.get('week_number')}): completion {previous_plan.get('completion_rate')}%, "
            f"quiz score {quiz.get('score', 'n/a')}/{len(quiz.get('questions', [])) or 3}.\n"
            f"Relevant previous tasks: {json.dumps(tasks)}"
        )
    return (
        "You are an accountability coach.\n"
        f"Career goal: {career_title}\n"
        f"Current phase: {phase}\n"
        f"Week number: {week_number}\n\n"
        f"{context}\n\n"
        "Produce a weekly plan: a short themed week_title, a one-sentence ai_feedback on last week's "
        "performance, and 5-7 concrete checkbox tasks categorised as Learning, Practice or Networking."
    )


def quiz_prompt(task_texts: list[str]) -> str:
    return (
        f"The student completed these learning tasks this week: \"{'; '.join(task_texts)}\".\n"
        "Write exactly 3 multiple-choice questions that verify they understood these specific topics and "
        "nothing else. Ask conceptual questions, not definitions. Give 4 options each with one correct "
        "answer and report its zero-based correct_option_index."
    )
