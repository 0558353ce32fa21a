"""Pytest fixtures and fakes for videorelay tests."""

import threading
import time
from typing import Dict, List, Optional, Set, Tuple

import pytest
from botocore.exceptions import ClientError
from sqlmodel import SQLModel

from videorelay.context import AppContext, make_engine
from videorelay.errors import RemoteProviderError
from videorelay.history import VideoHistoryStore
from videorelay.models import VideoMode
from videorelay.remote import RemoteDeleteResult, RemoteVideo
from videorelay.settings import Settings
from videorelay.storage import LocalFileStore, ObjectStore

PUBLIC_BASE = "https://cdn.example.com/"
JOB_CREATED_AT = 1_700_000_000


class FakeVideoApi:
    """In-memory stand-in for the remote video API."""

    def __init__(self):
        self.videos: Dict[str, dict] = {}
        self.failing_variants: Set[str] = set()
        self.downloads: List[Tuple[str, str]] = []
        self.deleted: List[str] = []
        self.references: Dict[str, Optional[tuple]] = {}
        self.retrieve_error: Optional[RemoteProviderError] = None
        self.delete_error: Optional[RemoteProviderError] = None
        self.download_delay = 0.0
        self._lock = threading.Lock()

    def add(self, video_id: str, status: str = "queued", progress: Optional[float] = 0, **extra) -> None:
        self.videos[video_id] = {
            "id": video_id,
            "object": "video",
            "created_at": JOB_CREATED_AT,
            "status": status,
            "model": "sora-2",
            "progress": progress,
            "seconds": "8",
            "size": "1280x720",
            **extra,
        }

    def set_status(self, video_id: str, status: str, progress: Optional[float] = None, error: Optional[dict] = None) -> None:
        self.videos[video_id].update(status=status, progress=progress, error=error)

    def _get(self, video_id: str) -> dict:
        if video_id not in self.videos:
            raise RemoteProviderError(f"Video {video_id} not found", 404)
        return self.videos[video_id]

    def create(self, *, prompt, model, size, seconds, input_reference=None) -> RemoteVideo:
        video_id = f"video_{len(self.videos) + 1}"
        self.add(video_id, model=model, size=size, seconds=str(seconds), prompt=prompt)
        self.references[video_id] = input_reference
        return RemoteVideo.model_validate(self.videos[video_id])

    def remix(self, video_id: str, *, prompt: str) -> RemoteVideo:
        source = self._get(video_id)
        new_id = f"{video_id}_remix"
        self.add(new_id, model=source["model"], size=source["size"], seconds=source["seconds"], prompt=prompt, remix_of=video_id)
        return RemoteVideo.model_validate(self.videos[new_id])

    def retrieve(self, video_id: str) -> RemoteVideo:
        if self.retrieve_error is not None:
            raise self.retrieve_error
        return RemoteVideo.model_validate(self._get(video_id))

    def download_content(self, video_id: str, variant: str = "video") -> bytes:
        if self.download_delay:
            time.sleep(self.download_delay)
        with self._lock:
            self.downloads.append((video_id, variant))
        if variant in self.failing_variants:
            raise RemoteProviderError(f"{variant} not available", 404)
        return f"{video_id}:{variant}".encode()

    def delete(self, video_id: str) -> RemoteDeleteResult:
        if self.delete_error is not None:
            raise self.delete_error
        self._get(video_id)
        self.deleted.append(video_id)
        del self.videos[video_id]
        return RemoteDeleteResult(id=video_id, object="video.deleted", deleted=True)

    def download_count(self, video_id: str, variant: str) -> int:
        return self.downloads.count((video_id, variant))


class FakeS3Client:
    """Records boto3 put/delete calls; can be told to fail per key."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.puts: List[str] = []
        self.delete_attempts: List[str] = []
        self.fail_put: Set[str] = set()
        self.fail_delete: Dict[str, str] = {}
        self._lock = threading.Lock()

    def put_object(self, Bucket, Key, Body, ContentType):
        if Key in self.fail_put:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
        with self._lock:
            self.puts.append(Key)
            self.objects[Key] = (Body, ContentType)
        return {}

    def delete_object(self, Bucket, Key):
        self.delete_attempts.append(Key)
        if Key in self.fail_delete:
            code = self.fail_delete[Key]
            raise ClientError({"Error": {"Code": code, "Message": code}}, "DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def put_count(self, key: str) -> int:
        return self.puts.count(key)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="sk-test",
        APP_PASSWORD=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'videos.db'}",
        FILE_STORAGE_MODE="r2",
        VERCEL=None,
        OUTPUT_DIR=str(tmp_path / "generated-videos"),
        R2_PUBLIC_BASE_URL=PUBLIC_BASE,
    )


@pytest.fixture
def fake_api() -> FakeVideoApi:
    return FakeVideoApi()


@pytest.fixture
def s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def store(settings) -> VideoHistoryStore:
    engine = make_engine(settings.DATABASE_URL)
    SQLModel.metadata.create_all(engine)
    yield VideoHistoryStore(engine)
    engine.dispose()


@pytest.fixture
def ctx(settings, store, fake_api, s3) -> AppContext:
    return AppContext(
        settings=settings,
        history=store,
        remote=fake_api,
        object_store=ObjectStore(s3, "videos-bucket", PUBLIC_BASE),
        file_store=LocalFileStore(settings.OUTPUT_DIR),
    )


@pytest.fixture
def submit(ctx, fake_api):
    """Submit a job the way the create endpoint does: remote first, then the local row."""

    def _submit(video_id: str = "v1", *, model: str = "sora-2", size: str = "1280x720", seconds: int = 8, status: str = "queued"):
        fake_api.add(video_id, status=status, model=model, size=size, seconds=str(seconds))
        ctx.history.insert_or_update_on_create(
            id=video_id,
            mode=VideoMode.CREATE,
            prompt="a cat surfing",
            model=model,
            size=size,
            seconds=seconds,
            job_created_at=JOB_CREATED_AT,
        )
        return video_id

    return _submit
