import logging
import math
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from videorelay.assets import is_materialized, materialize
from videorelay.context import AppContext
from videorelay.errors import VideoRelayError
from videorelay.history import to_iso
from videorelay.models import VideoHistory, VideoStatus
from videorelay.remote import RemoteVideo
from videorelay.settings import StorageMode

logger = logging.getLogger(__name__)


class JobView(BaseModel):
    """Remote job metadata merged with the local record, as sent to the client."""

    id: str
    status: VideoStatus
    progress: int
    model: Optional[str] = None
    size: Optional[str] = None
    seconds: Optional[Union[str, int]] = None
    created_at: int
    object: str = "video"
    error: Optional[Dict[str, Any]] = None
    videoUrl: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    spritesheetUrl: Optional[str] = None
    storageModeUsed: StorageMode = StorageMode.OBJECT_STORE
    costDetails: Optional[Dict[str, Any]] = None
    completedAt: Optional[str] = None
    durationMs: Optional[int] = None


def normalize_status(remote_status: str) -> VideoStatus:
    if remote_status == "completed":
        return VideoStatus.COMPLETED
    if remote_status == "failed":
        return VideoStatus.FAILED
    # queued, in_progress
    return VideoStatus.PROCESSING


def display_progress(status: VideoStatus, remote_progress: Optional[float]) -> int:
    if status == VideoStatus.COMPLETED:
        return 100
    if remote_progress is None or not math.isfinite(remote_progress):
        return 0
    return max(0, min(100, int(remote_progress)))


def build_view(video: RemoteVideo, status: VideoStatus, progress: int, record: Optional[VideoHistory]) -> JobView:
    view = JobView(
        id=video.id,
        status=status,
        progress=progress,
        model=video.model,
        size=video.size,
        seconds=video.seconds,
        created_at=video.created_at,
        object=video.object,
        error=video.error.model_dump() if video.error else None,
    )
    if record is None:
        return view
    # the URLs only count once the record is completed
    if is_materialized(record):
        view.videoUrl = record.video_url
        view.thumbnailUrl = record.thumbnail_url
        view.spritesheetUrl = record.spritesheet_url
        view.completedAt = to_iso(record.completed_at)
    view.storageModeUsed = record.storage_mode or StorageMode.OBJECT_STORE
    view.costDetails = record.cost_details
    view.durationMs = record.duration_ms
    return view


def _sync_record(ctx: AppContext, video: RemoteVideo, status: VideoStatus, progress: int) -> Optional[VideoHistory]:
    if status == VideoStatus.FAILED:
        ctx.history.mark_failed(id=video.id, error=video.error.message if video.error else None)
    elif status == VideoStatus.PROCESSING:
        ctx.history.update_status(id=video.id, status=status, progress=progress, error=None)
    else:
        return materialize(ctx, video.id, video.created_at)
    return ctx.history.get_by_id(video.id)


def reconcile(ctx: AppContext, job_id: str) -> JobView:
    """
    Fetch the remote job, fold it into the local record, and return the merged view.
    Only the remote fetch can fail the call; local bookkeeping is best-effort.
    """
    video = ctx.require_remote().retrieve(job_id)
    logger.info(f"Video {job_id} status: {video.status}, progress: {video.progress}")

    status = normalize_status(video.status)
    progress = display_progress(status, video.progress)

    record = None
    try:
        record = _sync_record(ctx, video, status, progress)
    except VideoRelayError:
        logger.exception(f"Failed to update video history for {video.id}")
        try:
            record = ctx.history.get_by_id(video.id)
        except VideoRelayError:
            logger.exception(f"Failed to read video history for {video.id}")

    return build_view(video, status, progress, record)
