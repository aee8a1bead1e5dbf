import re

from pydantic import BaseModel, Field, field_validator, model_validator

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class BookingRequest(BaseModel):
    date: str | None = None
    time: str | None = None


class BookingResponse(BaseModel):
    success: bool
    message: str
    reason: str
    consultant_name: str | None = None
    session_id: str | None = None


class SessionOut(BaseModel):
    id: str
    student_id: str
    student_name: str
    consultant_id: str
    consultant_name: str
    date: str
    time: str
    status: str
    meeting_link: str | None = None
    joinable: bool | None = None


class AvailabilityIn(BaseModel):
    days: list[str] = Field(min_length=1)
    start_time: str
    end_time: str

    @field_validator("days")
    @classmethod
    def _known_weekdays(cls, value: list[str]) -> list[str]:
        unknown = [day for day in value if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"unknown weekday names: {', '.join(unknown)}")
        # Keep calendar order and drop duplicates.
        return [day for day in WEEKDAYS if day in value]

    @field_validator("start_time", "end_time")
    @classmethod
    def _zero_padded(cls, value: str) -> str:
        if not HHMM_PATTERN.match(value or ""):
            raise ValueError("times must be zero-padded 24-hour HH:MM")
        return value

    @model_validator(mode="after")
    def _window_order(self) -> "AvailabilityIn":
        if not self.start_time < self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AvailabilityOut(BaseModel):
    consultant_id: str
    days: list[str]
    start_time: str
    end_time: str


class ConsultantOut(BaseModel):
    id: str
    name: str
    email: str
    availability: AvailabilityOut | None = None


class AdminSessionCreate(BaseModel):
    student_id: str
    consultant_id: str
    date: str
    time: str
    status: str = "Scheduled"
    meeting_link: str | None = None


class AdminSessionUpdate(BaseModel):
    date: str | None = None
    time: str | None = None
    status: str | None = None
    meeting_link: str | None = None
