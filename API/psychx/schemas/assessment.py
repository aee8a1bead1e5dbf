from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class CareerCategory(str, Enum):
    TECHNICAL = "Technical"
    SPORTS = "Sports"
    CREATIVE = "Creative"
    HEALTHCARE = "Healthcare"
    BUSINESS = "Business"
    SERVICES = "Services"


class AssessmentQuestion(BaseModel):
    id: int
    text: str = Field(min_length=1)
    type: str = Field(pattern="^(scale|multiple_choice|text)$")
    options: list[str] | None = None
    category: str = "general"


class Answer(BaseModel):
    question_id: int
    question_text: str
    answer: str


class QuestionBatchRequest(BaseModel):
    categories: list[CareerCategory] = Field(min_length=1)
    previous_answers: list[Answer] = Field(default_factory=list)


class QuestionBatchResponse(BaseModel):
    batch_number: int
    questions: list[AssessmentQuestion]


class AssessmentProfile(BaseModel):
    categories: list[CareerCategory] = Field(min_length=1)
    answers: list[Answer]
    location_current: str
    willingness_to_travel: str  # Local | State | National | International
    yearly_budget_inr: int = Field(ge=0)
    years_to_invest: int = Field(ge=1, le=15)
    student_class: str = ""


class RealityCheck(BaseModel):
    is_realistic: bool = True
    feasibility_rating: str = "Medium"
    verdict: str = ""
    financial_gap: str = ""
    location_verdict: str = ""


class CareerRecommendation(BaseModel):
    career_title: str = Field(min_length=1)
    description: str = ""
    reason_why_chosen: str = ""
    aptitude_score: int = Field(default=0, ge=0, le=100)
    learning_curve: str = ""
    reality_check: RealityCheck = Field(default_factory=RealityCheck)
    immediate_next_step: str = ""


class AssessmentOut(BaseModel):
    id: str
    user_id: str
    created_at: datetime
    recommendations: list[CareerRecommendation]
