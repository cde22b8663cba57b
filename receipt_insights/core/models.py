"""Pydantic models for Receipt Insights.

This module defines the expense record persisted in the datastore, the derived
analysis summary, and the job state values published by the analysis
controller. Every job state variant carries a ``status`` discriminator so the
union serializes cleanly over the API.
"""

from datetime import datetime
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExpenseRecord(BaseModel):
    """Pydantic model representing one user expense."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    date: str
    amount: float = Field(ge=0, allow_inf_nan=False)
    category: str
    status: str = "New"
    merchant: str | None = None
    notes: str | None = None
    created_at: str | None = None


class ExpenseUpdate(BaseModel):
    """Editable fields of an expense. ``id`` and ``owner_id`` are never updated."""

    date: str | None = None
    amount: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    category: str | None = None
    status: str | None = None
    merchant: str | None = None
    notes: str | None = None

    @field_validator("date", "amount", "category", "status")
    @classmethod
    def _required_fields_are_not_cleared(cls, value: object) -> object:
        if value is None:
            msg = "field cannot be cleared"
            raise ValueError(msg)
        return value


class AnalysisSummary(BaseModel):
    """Spend summary derived from a set of expenses. Never persisted."""

    model_config = ConfigDict(frozen=True)

    summary: str
    total_spent: float
    top_category: str
    category_totals: dict[str, float]
    analyzed_at: datetime


class _JobStateBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    terminal: ClassVar[bool] = False


class Idle(_JobStateBase):
    """No job is running."""

    status: Literal["idle"] = "idle"


class Running(_JobStateBase):
    """A job is polling the backend; ``attempt`` is the 0-indexed poll about to run."""

    status: Literal["running"] = "running"
    attempt: int = Field(ge=0)


class Succeeded(_JobStateBase):
    """The job completed and the summary was computed."""

    terminal: ClassVar[bool] = True
    status: Literal["succeeded"] = "succeeded"
    result: AnalysisSummary


class Failed(_JobStateBase):
    """The backend could not be queried; polling stopped."""

    terminal: ClassVar[bool] = True
    status: Literal["failed"] = "failed"
    reason: str


class TimedOut(_JobStateBase):
    """The retry budget was exhausted before the backend reported completion."""

    terminal: ClassVar[bool] = True
    status: Literal["timed_out"] = "timed_out"


JobState = Annotated[Idle | Running | Succeeded | Failed | TimedOut, Field(discriminator="status")]


class JobHandle(BaseModel):
    """Identifies one analysis job at the backend, and the poll being made."""

    job_id: str
    attempt: int = 0


class JobStatusReport(BaseModel):
    """Answer of the backend status query."""

    complete: bool


class AnalysisStarted(BaseModel):
    """Response body of the analysis start endpoint."""

    job_id: str
    state: JobState


class ScannedReceipt(BaseModel):
    """An unsaved expense draft and where its receipt image was stored."""

    image_key: str
    image_url: str
    draft: ExpenseRecord
