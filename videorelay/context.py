import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from videorelay.errors import ConfigError
from videorelay.history import VideoHistoryStore
from videorelay.remote import VideoApiClient
from videorelay.settings import Settings, StorageMode, resolve_storage_mode
from videorelay.storage import LocalFileStore, ObjectStore

logger = logging.getLogger(__name__)


class JobLocks:
    """Per-job-id mutexes. Entries are dropped once nobody holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(job_id, threading.Lock())
            self._users[job_id] = self._users.get(job_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[job_id] -= 1
                if not self._users[job_id]:
                    del self._users[job_id]
                    del self._locks[job_id]

    def __len__(self) -> int:
        return len(self._locks)


def make_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


@dataclass
class AppContext:
    """Process-wide collaborators, built once at startup and handed to every request."""

    settings: Settings
    history: VideoHistoryStore
    remote: Optional[VideoApiClient] = None
    object_store: Optional[ObjectStore] = None
    file_store: Optional[LocalFileStore] = None
    locks: JobLocks = field(default_factory=JobLocks)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        engine = make_engine(settings.DATABASE_URL)
        SQLModel.metadata.create_all(engine)

        remote = VideoApiClient.from_settings(settings) if settings.OPENAI_API_KEY else None
        object_store = ObjectStore.from_settings(settings) if settings.r2_configured else None
        if remote is None:
            logger.warning("OPENAI_API_KEY is not set; video endpoints will return 500")
        if object_store is None:
            logger.warning("R2 storage is not configured; completed videos cannot be mirrored")

        return cls(
            settings=settings,
            history=VideoHistoryStore(engine),
            remote=remote,
            object_store=object_store,
            file_store=LocalFileStore(settings.OUTPUT_DIR),
        )

    @property
    def storage_mode(self) -> StorageMode:
        return resolve_storage_mode(self.settings)

    def require_remote(self) -> VideoApiClient:
        if self.remote is None:
            raise ConfigError("Server configuration error: API key not found.")
        return self.remote

    def require_object_store(self) -> ObjectStore:
        if self.object_store is None:
            raise ConfigError("R2 storage is not configured")
        return self.object_store
