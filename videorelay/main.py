import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from videorelay.auth import api_key_guard, get_context, password_hash_guard
from videorelay.context import AppContext
from videorelay.cost import calculate_video_cost
from videorelay.deletion import delete_job
from videorelay.errors import PersistenceError, VideoRelayError
from videorelay.history import to_metadata
from videorelay.models import VideoMode
from videorelay.reconciler import JobView, reconcile
from videorelay.remote import RemoteVideo
from videorelay.schemas import RemixVideoRequest, VideoSeconds
from videorelay.settings import get_settings

logger = logging.getLogger(__name__)

# ----- History (auth only; no remote API involved) -----
history_router = APIRouter(prefix="/videos/history", dependencies=[Depends(password_hash_guard)])


@history_router.get("")
def list_history(
    limit: int = Query(100, ge=1, le=500),
    ctx: AppContext = Depends(get_context),
):
    try:
        items = ctx.history.list_recent(limit)
    except PersistenceError:
        logger.exception("Failed to list video history")
        return JSONResponse({"error": "Failed to fetch video history"}, status_code=500)
    return {"items": [to_metadata(row) for row in items]}


@history_router.delete("")
def clear_history(ctx: AppContext = Depends(get_context)):
    try:
        removed = ctx.history.delete_all()
    except PersistenceError:
        logger.exception("Failed to clear video history")
        return JSONResponse({"error": "Failed to clear history"}, status_code=500)
    logger.info(f"Cleared {removed} video history records")
    return {"ok": True}


# ----- Video jobs (remote API key + auth) -----
videos_router = APIRouter(prefix="/videos", dependencies=[Depends(api_key_guard), Depends(password_hash_guard)])


def _record_submission(
    ctx: AppContext,
    video: RemoteVideo,
    *,
    mode: VideoMode,
    prompt: str,
    model: str,
    size: str,
    seconds: Union[str, int],
    remix_of: Optional[str] = None,
):
    try:
        ctx.history.insert_or_update_on_create(
            id=video.id,
            mode=mode,
            prompt=prompt,
            model=model,
            size=size,
            seconds=seconds,
            job_created_at=video.created_at,
            progress=int(video.progress or 0),
            remix_of=remix_of,
        )
    except PersistenceError:
        logger.exception(f"Failed to record video {video.id} in history")
    body = video.model_dump(exclude_none=True)
    body["costDetails"] = calculate_video_cost(model=model, size=size, seconds=int(seconds))
    return body


@videos_router.post("")
def create_video(
    prompt: str = Form(..., min_length=1),
    model: str = Form("sora-2"),
    size: str = Form("1280x720"),
    seconds: VideoSeconds = Form("4"),
    input_reference: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    logger.info(f"Creating video with model {model}, size {size}, {seconds}s")
    reference = None
    if input_reference is not None and input_reference.filename:
        reference = (
            input_reference.filename,
            input_reference.file.read(),
            input_reference.content_type or "application/octet-stream",
        )
    video = ctx.require_remote().create(
        prompt=prompt,
        model=model,
        size=size,
        seconds=seconds,
        input_reference=reference,
    )
    return _record_submission(
        ctx,
        video,
        mode=VideoMode.CREATE,
        prompt=prompt,
        model=model,
        size=size,
        seconds=seconds,
    )


@videos_router.post("/{video_id}/remix")
def remix_video(video_id: str, payload: RemixVideoRequest, ctx: AppContext = Depends(get_context)):
    logger.info(f"Remixing video {video_id}")
    video = ctx.require_remote().remix(video_id, prompt=payload.prompt)
    return _record_submission(
        ctx,
        video,
        mode=VideoMode.REMIX,
        prompt=payload.prompt,
        model=video.model or "sora-2",
        size=video.size or "1280x720",
        seconds=video.seconds or 4,
        remix_of=video.remix_of or video_id,
    )


@videos_router.get("/{video_id}", response_model=JobView)
def get_video(video_id: str, ctx: AppContext = Depends(get_context)):
    logger.info(f"Received GET request to /videos/{video_id}")
    return reconcile(ctx, video_id)


@videos_router.delete("/{video_id}")
def delete_video(video_id: str, ctx: AppContext = Depends(get_context)):
    logger.info(f"Received DELETE request to /videos/{video_id}")
    return delete_job(ctx, video_id).model_dump()


# ----- App -----
def _relay_error_handler(request: Request, exc: VideoRelayError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


def _validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "invalid"))
    return JSONResponse({"error": "Invalid request: " + "; ".join(problems)}, status_code=422)


def _unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed")
    return JSONResponse({"error": "An unexpected error occurred."}, status_code=500)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    settings = context.settings if context else get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "context", None) is None:
            app.state.context = AppContext.from_settings(settings)
        yield

    app = FastAPI(title="videorelay", lifespan=lifespan)
    if context is not None:
        app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(VideoRelayError, _relay_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    @app.get("/healthz", include_in_schema=False)
    def healthz():
        return {"ok": True}

    # history first so /videos/history never matches /videos/{video_id}
    app.include_router(history_router)
    app.include_router(videos_router)
    return app


app = create_app()
