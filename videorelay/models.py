from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from videorelay.settings import StorageMode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoMode(str, Enum):
    CREATE = "create"
    REMIX = "remix"


class VideoStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoHistory(SQLModel, table=True):
    __tablename__ = "ai_video_history"

    id: str = Field(primary_key=True)  # remote job id
    job_created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    mode: VideoMode
    prompt: str
    model: str
    size: str
    seconds: int
    cost_details: Optional[Dict] = Field(default=None, sa_column=Column(JSON))
    status: VideoStatus = VideoStatus.PROCESSING
    progress: int = 0
    error: Optional[str] = None
    remix_of: Optional[str] = None
    storage_mode: StorageMode = StorageMode.OBJECT_STORE
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    spritesheet_url: Optional[str] = None
    duration_ms: Optional[int] = None
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    has_assets: bool = False
