from datetime import datetime

from pydantic import BaseModel, Field


class RevenueSignalOut(BaseModel):
    id: int
    type: str
    severity: str
    value: float | None = None
    meta: dict = Field(default_factory=dict)
    detected_at: datetime


class SignalListOut(BaseModel):
    user_id: str
    signals: list[RevenueSignalOut] = Field(default_factory=list)


class DetectSignalsOut(BaseModel):
    success: bool = True
    processed: int = 0
