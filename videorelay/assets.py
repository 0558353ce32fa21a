"""
Asset mirror: copies the media of a completed remote job into the bucket
and finalizes the local record.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

from videorelay.context import AppContext
from videorelay.errors import PartialAssetError, RemoteProviderError, StorageError
from videorelay.models import VideoHistory, VideoStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetVariant:
    variant: str
    filename: str
    content_type: str
    optional: bool = False

    def key(self, job_id: str) -> str:
        return f"videos/{job_id}/{self.filename}"


# Order matters: the required video goes first so a failure uploads nothing else
VARIANTS = (
    AssetVariant("video", "video.mp4", "video/mp4"),
    AssetVariant("thumbnail", "thumbnail.webp", "image/webp", optional=True),
    AssetVariant("spritesheet", "spritesheet.jpg", "image/jpeg", optional=True),
)

def local_filename(job_id: str, variant: AssetVariant) -> str:
    return f"{job_id}_{variant.filename}"


def is_materialized(record: Optional[VideoHistory]) -> bool:
    return bool(record and record.status == VideoStatus.COMPLETED and record.video_url)


def _mirror_variant(ctx: AppContext, job_id: str, item: AssetVariant) -> str:
    content = ctx.require_remote().download_content(job_id, variant=item.variant)
    return ctx.require_object_store().upload_object(item.key(job_id), content, item.content_type)


def materialize(ctx: AppContext, job_id: str, job_created_at: float) -> Optional[VideoHistory]:
    """
    Mirror every variant of a completed job and mark the record completed.

    Runs at most once per job id: the per-job lock serializes callers in this
    process and mark_completed only succeeds while the row is processing.
    Returns the finalized record, or None when no record exists for the job.
    """
    existing = ctx.history.get_by_id(job_id)
    if is_materialized(existing):
        return existing

    with ctx.locks.hold(job_id):
        # another request may have finished while we waited
        existing = ctx.history.get_by_id(job_id)
        if is_materialized(existing):
            return existing
        if existing is None:
            logger.warning(f"No history record for video {job_id}; skipping asset mirroring")
            return None
        if existing.status != VideoStatus.PROCESSING:
            logger.warning(f"Video {job_id} is {existing.status.value} locally; skipping asset mirroring")
            return existing

        uploaded: Dict[str, str] = {}
        for item in VARIANTS:
            try:
                uploaded[item.variant] = _mirror_variant(ctx, job_id, item)
            except (RemoteProviderError, StorageError) as e:
                if item.optional:
                    logger.warning(str(PartialAssetError(job_id, item.variant, e)))
                    continue
                raise

        duration_ms = max(0, int(time.time() * 1000 - job_created_at * 1000))
        won = ctx.history.mark_completed(
            id=job_id,
            video_url=uploaded["video"],
            thumbnail_url=uploaded.get("thumbnail"),
            spritesheet_url=uploaded.get("spritesheet"),
            duration_ms=duration_ms,
        )
        if won:
            logger.info(f"Mirrored {len(uploaded)}/{len(VARIANTS)} assets for video {job_id} in {duration_ms}ms")
        else:
            logger.warning(f"Video {job_id} was finalized elsewhere; keeping the stored record")

    # re-read: cost_details and friends don't travel through mark_completed
    return ctx.history.get_by_id(job_id)
