from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional


class StartSessionRequest(BaseModel):
    learner_id: int = Field(gt=0)
    subject_unit_ids: List[int] = Field(min_length=1)
    question_count: int = Field(ge=1)
    subject_area_id: Optional[int] = None
    kind: str = 'practice'
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    balance_units: bool = False

    class Config:
        extra = "ignore"

    @field_validator('subject_unit_ids')
    @classmethod
    def dedupe_units(cls, value):
        return list(dict.fromkeys(value))

    @field_validator('kind')
    @classmethod
    def known_kind(cls, value):
        if value not in ('practice', 'timed_exam'):
            raise ValueError("kind must be 'practice' or 'timed_exam'")
        return value


class SubmitAnswerRequest(BaseModel):
    choice_id: Optional[int] = None
    assessment: Optional[str] = None  # correct | partial | incorrect | skipped

    class Config:
        extra = "ignore"

    @model_validator(mode='after')
    def one_answer(self):
        if self.choice_id is None and self.assessment is None:
            raise ValueError('Either choice_id or assessment is required')
        return self


class RetryPersistenceRequest(BaseModel):
    # Empty means every failed step.
    steps: Optional[List[str]] = None

    class Config:
        extra = "ignore"

    @field_validator('steps')
    @classmethod
    def known_steps(cls, value):
        allowed = {'session_record', 'question_outcomes', 'rank', 'resolutions'}
        if value:
            unknown = [step for step in value if step not in allowed]
            if unknown:
                raise ValueError(f"Unknown persistence steps: {', '.join(unknown)}")
        return value


class HistoryQuery(BaseModel):
    sort: str = 'date'
    direction: str = 'desc'

    class Config:
        extra = "ignore"

    @field_validator('sort')
    @classmethod
    def known_sort(cls, value):
        if value not in ('date', 'points'):
            raise ValueError("sort must be 'date' or 'points'")
        return value

    @field_validator('direction')
    @classmethod
    def known_direction(cls, value):
        if value not in ('asc', 'desc'):
            raise ValueError("direction must be 'asc' or 'desc'")
        return value

    @property
    def order(self) -> str:
        return f'{self.sort}_{self.direction}'
