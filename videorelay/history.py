"""
Record store for video generation jobs.
One row per remote job id; every write is keyed by that id and terminal
writes happen in a single conditional UPDATE.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from videorelay.cost import calculate_video_cost
from videorelay.errors import PersistenceError
from videorelay.models import VideoHistory, VideoMode, VideoStatus, utcnow
from videorelay.settings import StorageMode

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        # sqlite drops tzinfo; everything is written in UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def to_metadata(row: VideoHistory) -> Dict[str, Any]:
    """Wire shape used by the history listing; unset optionals are omitted."""
    created = row.created_at
    if created is not None and created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    item: Dict[str, Any] = {
        "id": row.id,
        "timestamp": int(created.timestamp() * 1000) if created else int(utcnow().timestamp() * 1000),
        "filename": f"{row.id}.mp4",
        "storageModeUsed": (row.storage_mode or StorageMode.OBJECT_STORE).value,
        "durationMs": row.duration_ms or 0,
        "model": row.model,
        "size": row.size,
        "seconds": row.seconds,
        "prompt": row.prompt,
        "mode": row.mode.value,
        "costDetails": row.cost_details,
        "remix_of": row.remix_of,
        "status": row.status.value,
        "error": row.error,
        "progress": row.progress,
        "videoUrl": row.video_url,
        "thumbnailUrl": row.thumbnail_url,
        "spritesheetUrl": row.spritesheet_url,
        "completedAt": to_iso(row.completed_at),
    }
    required = {"id", "timestamp", "filename", "durationMs", "model", "size", "seconds", "prompt", "mode", "costDetails"}
    return {k: v for k, v in item.items() if k in required or v is not None}


class VideoHistoryStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def _upsert(self):
        try:
            return _UPSERT_DIALECTS[self.engine.dialect.name]
        except KeyError:
            raise PersistenceError(f"Upsert is not supported for dialect {self.engine.dialect.name}")

    def insert_or_update_on_create(
        self,
        *,
        id: str,
        mode: VideoMode,
        prompt: str,
        model: str,
        size: str,
        seconds: Union[int, str],
        job_created_at: float,
        progress: int = 0,
        remix_of: Optional[str] = None,
    ) -> None:
        seconds = int(seconds)
        now = utcnow()
        values = {
            "id": id,
            "mode": mode,
            "prompt": prompt,
            "model": model,
            "size": size,
            "seconds": seconds,
            "cost_details": calculate_video_cost(model=model, size=size, seconds=seconds),
            "status": VideoStatus.PROCESSING,
            "progress": progress or 0,
            "remix_of": remix_of,
            "job_created_at": _to_datetime(job_created_at),
            "storage_mode": StorageMode.OBJECT_STORE,
            "has_assets": False,
            "created_at": now,
            "updated_at": now,
        }
        # cost_details is computed once and never touched by the conflict branch
        stmt = self._upsert()(VideoHistory.__table__).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "mode": mode,
                "prompt": prompt,
                "model": model,
                "size": size,
                "seconds": seconds,
                "progress": progress or 0,
                "remix_of": remix_of,
                "updated_at": now,
            },
        )
        self._write(stmt, f"upsert video record {id}")

    def update_status(self, *, id: str, status: VideoStatus, progress: int, error: Optional[str] = None) -> bool:
        """Progress update for a job that is still processing. Progress never goes down."""
        stmt = (
            update(VideoHistory)
            .where(VideoHistory.id == id, VideoHistory.status == VideoStatus.PROCESSING)
            .values(
                status=status,
                progress=case((VideoHistory.progress < progress, progress), else_=VideoHistory.progress),
                error=error,
                updated_at=utcnow(),
            )
        )
        return self._write(stmt, f"update status of {id}") > 0

    def mark_completed(
        self,
        *,
        id: str,
        video_url: str,
        thumbnail_url: Optional[str] = None,
        spritesheet_url: Optional[str] = None,
        duration_ms: int,
    ) -> bool:
        """
        Terminal write to completed. Conditional on the row still processing,
        so only one caller can ever finalize a job. Returns True for the winner.
        """
        now = utcnow()
        stmt = (
            update(VideoHistory)
            .where(VideoHistory.id == id, VideoHistory.status == VideoStatus.PROCESSING)
            .values(
                status=VideoStatus.COMPLETED,
                progress=100,
                error=None,
                video_url=video_url,
                thumbnail_url=thumbnail_url,
                spritesheet_url=spritesheet_url,
                duration_ms=duration_ms,
                storage_mode=StorageMode.OBJECT_STORE,
                has_assets=True,
                completed_at=now,
                updated_at=now,
            )
        )
        return self._write(stmt, f"mark {id} completed") > 0

    def mark_failed(self, *, id: str, error: Optional[str]) -> bool:
        stmt = (
            update(VideoHistory)
            .where(VideoHistory.id == id, VideoHistory.status == VideoStatus.PROCESSING)
            .values(status=VideoStatus.FAILED, error=error, progress=0, updated_at=utcnow())
        )
        return self._write(stmt, f"mark {id} failed") > 0

    def get_by_id(self, id: str) -> Optional[VideoHistory]:
        try:
            with Session(self.engine) as s:
                return s.get(VideoHistory, id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read video record {id}: {e}") from e

    def list_recent(self, limit: int = 100) -> List[VideoHistory]:
        try:
            with Session(self.engine) as s:
                rows = s.exec(select(VideoHistory).order_by(VideoHistory.created_at.desc()).limit(limit))
                return list(rows.all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list video history: {e}") from e

    def delete_by_id(self, id: str) -> bool:
        return self._write(delete(VideoHistory).where(VideoHistory.id == id), f"delete video record {id}") > 0

    def delete_all(self) -> int:
        return self._write(delete(VideoHistory), "clear video history")

    def _write(self, stmt, what: str) -> int:
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to {what}: {e}") from e
