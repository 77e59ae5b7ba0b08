from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class SyncRunIn(BaseModel):
    connection_id: int | None = Field(default=None, ge=1)
    account_id: str | None = Field(default=None, max_length=64)
    force: bool = False

    @field_validator('account_id')
    @classmethod
    def validate_account_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = str(value).strip()
        return normalized or None


class SyncTriggerResult(BaseModel):
    connection_id: int | None = None
    account_id: str
    status: str
    job_id: str | None = None
    error: str | None = None


class SyncRunOut(BaseModel):
    success: bool
    message: str
    results: list[SyncTriggerResult] = Field(default_factory=list)


class SyncStatusOut(BaseModel):
    account_id: str
    stage: str
    progress: int = Field(ge=0, le=100)
    message: str
    last_synced_at: datetime | None = None


class SyncJobOut(BaseModel):
    job_id: str
    account_id: str
    status: str
    force: bool = False
    actor: str | None = None
    locked_by: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
