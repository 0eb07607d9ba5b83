"""
Shared fixtures: a throwaway SQLite database per test, a scripted image
provider, local storage under tmp_path and an HTTP client for the app.
"""

import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the environment goes first
_TMP = Path(tempfile.mkdtemp(prefix="photobatch-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP / 'app.db'}")
os.environ.setdefault("STORAGE_PATH", str(_TMP / "storage"))
os.environ.setdefault("PROVIDER_POLL_INTERVAL_SECONDS", "0")
os.environ.setdefault("PROVIDER_TIMEOUT_SECONDS", "5")
os.environ.setdefault("REVENUECAT_WEBHOOK_SECRET", "test-webhook-secret")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from photobatch.database import Base, get_db, get_session_factory
from photobatch.errors import ProviderError
from photobatch.models import CreditAccount
from photobatch.services import presets
from photobatch.services.fal import DONE, FAILED, RUNNING, JobHandle, JobStatus
from photobatch.services.storage import LocalStorage


class FakeProvider:
    """
    Scripted stand-in for the fal.ai queue.

    The variation index is recovered from the lighting modifier at the end
    of the prompt, so individual slots can be made to fail.
    """

    def __init__(
        self,
        fail_indices: set[int] | None = None,
        never_finish: bool = False,
        failed_status_indices: set[int] | None = None,
    ):
        self.fail_indices = fail_indices or set()
        self.failed_status_indices = failed_status_indices or set()
        self.never_finish = never_finish
        self.submitted: list[tuple[str, dict]] = []
        self.downloads: list[str] = []

    @staticmethod
    def index_of(prompt: str) -> int:
        for index in range(len(presets.VARIATION_MODIFIERS)):
            if prompt.endswith(presets.variation_modifier(index)):
                return index
        raise AssertionError(f"No variation modifier in prompt: {prompt}")

    async def submit(self, model_id: str, params: dict) -> JobHandle:
        self.submitted.append((model_id, params))
        index = self.index_of(params["prompt"])
        if index in self.fail_indices:
            raise ProviderError(f"Simulated provider failure for variation {index}")
        request_id = f"req-{len(self.submitted)}-{index}"
        return JobHandle(
            request_id=request_id,
            status_url=f"https://queue.test/{request_id}/status",
            response_url=f"https://queue.test/{request_id}",
        )

    async def poll(self, handle: JobHandle) -> JobStatus:
        if self.never_finish:
            return JobStatus(status=RUNNING)
        index = int(handle.request_id.rsplit("-", 1)[1])
        if index in self.failed_status_indices:
            return JobStatus(status=FAILED, detail={"status": "FAILED"})
        return JobStatus(
            status=DONE,
            result_ref={"images": [{"url": f"https://cdn.test/{handle.request_id}.jpg"}]},
        )

    async def download(self, url: str) -> bytes:
        self.downloads.append(url)
        return b"\xff\xd8\xff" + url.encode()


class BrokenStorage:
    """Storage whose writes always fail."""

    def __init__(self):
        self.deleted: list[str] = []

    async def put_object(self, path: str, data: bytes, content_type: str = "image/jpeg") -> str:
        raise OSError("disk full")

    async def delete_object(self, path: str) -> bool:
        self.deleted.append(path)
        return False


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions use real separate connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(base_path=tmp_path / "storage", public_base_url="/files")


@pytest.fixture
def seed_account(session_factory):
    """Create a credit account with an exact balance."""

    async def _seed(user_id: str, free: int = 0, paid: int = 0) -> None:
        async with session_factory() as session:
            session.add(CreditAccount(user_id=user_id, free_credits=free, paid_credits=paid))
            await session.commit()

    return _seed


@pytest.fixture
async def client(session_factory, provider, storage):
    """HTTP client bound to the app with the test database, provider and storage."""
    from photobatch.main import app
    from photobatch.services.fal import get_provider
    from photobatch.services.storage import get_storage

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_storage] = lambda: storage

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
