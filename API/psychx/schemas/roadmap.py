from datetime import datetime

from pydantic import BaseModel, Field


class RoadmapStep(BaseModel):
    phase: str = Field(min_length=1)
    duration: str = ""
    milestones: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    location_advice: str = ""


class RoadmapRequest(BaseModel):
    career_title: str = Field(min_length=1, max_length=255)
    years_to_invest: int = Field(default=4, ge=1, le=15)


class RoadmapOut(BaseModel):
    id: str
    user_id: str
    career_title: str
    created_at: datetime
    steps: list[RoadmapStep]
