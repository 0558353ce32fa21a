import logging

from videorelay.assets import VARIANTS, local_filename
from videorelay.context import AppContext
from videorelay.errors import PersistenceError, StorageError
from videorelay.remote import RemoteDeleteResult
from videorelay.settings import StorageMode

logger = logging.getLogger(__name__)


def _delete_bucket_assets(ctx: AppContext, job_id: str) -> None:
    if ctx.object_store is None:
        logger.warning(f"R2 storage is not configured; leaving any assets of {job_id} in place")
        return
    for item in VARIANTS:
        key = item.key(job_id)
        try:
            ctx.object_store.delete_object(key)
        except StorageError as e:
            if e.missing:
                logger.debug(f"R2 object {key} already absent")
            else:
                logger.warning(f"Failed to delete R2 object {key}: {e}")


def _delete_local_assets(ctx: AppContext, job_id: str) -> None:
    if ctx.file_store is None:
        return
    for item in VARIANTS:
        try:
            ctx.file_store.delete_file(local_filename(job_id, item))
        except StorageError as e:
            # file might not exist, which is fine
            if not e.missing:
                logger.warning(str(e))


def delete_job(ctx: AppContext, job_id: str) -> RemoteDeleteResult:
    """
    Delete a job everywhere it lives. Only the remote delete is fatal; asset
    and record cleanup failures are logged so the client is never blocked.
    """
    result = ctx.require_remote().delete(job_id)
    logger.info(f"Video {job_id} deleted from the video API")

    mode = ctx.storage_mode
    if mode == StorageMode.OBJECT_STORE:
        _delete_bucket_assets(ctx, job_id)
    elif mode == StorageMode.LOCAL_FS:
        _delete_local_assets(ctx, job_id)
    # indexeddb assets live in the browser

    try:
        ctx.history.delete_by_id(job_id)
    except PersistenceError:
        logger.exception(f"Failed to delete video record {job_id}")

    return result
