from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class ScreenshotStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ScreenshotRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    target: str
    recipient: EmailStr
    with_login: bool = False

    @field_validator("target")
    @classmethod
    def _target_not_blank(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("target must not be blank")
        return value


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str = ""
    password: str = Field(default="", repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.email.strip() and self.password.strip())


class ScreenshotRecord(BaseModel):
    """
    Domain result of one request. `image_id` and `path` are only set for SUCCESS records.
    """

    model_config = ConfigDict(frozen=True)

    image_id: Optional[str] = None
    target: str
    recipient: str
    file_name: str
    path: Optional[str] = None
    file_size_bytes: int
    completed_at: datetime
    status: ScreenshotStatus


class PersistedAttempt(BaseModel):
    # Storage-facing shape; `id` is assigned by the record store on save.
    id: Optional[str] = None
    target: str
    recipient: str
    file_name: str
    file_path: str
    file_size_bytes: int = 0
    completed_at: datetime
    status: ScreenshotStatus
    error_message: Optional[str] = None

    def to_record(self) -> ScreenshotRecord:
        ok = self.status == ScreenshotStatus.SUCCESS
        return ScreenshotRecord(
            image_id=self.id if ok else None,
            target=self.target,
            recipient=self.recipient,
            file_name=self.file_name,
            path=self.file_path if ok else None,
            file_size_bytes=self.file_size_bytes,
            completed_at=self.completed_at,
            status=self.status,
        )


class RecordFilter(BaseModel):
    """
    Optional search criteria for persisted attempts; every criterion that is set must match.
    """

    target: Optional[str] = None
    recipient: Optional[str] = None
    status: Optional[ScreenshotStatus] = None
    completed_from: Optional[datetime] = None
    completed_to: Optional[datetime] = None
    min_file_size_bytes: Optional[int] = Field(default=None, ge=0)
    max_file_size_bytes: Optional[int] = Field(default=None, ge=0)
    file_name_contains: Optional[str] = None
    # Case-insensitive match across target, recipient and file name.
    keyword: Optional[str] = None


class RecordPage(BaseModel):
    items: list[PersistedAttempt]
    total: int
    limit: int
    offset: int
