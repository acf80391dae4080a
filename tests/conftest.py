"""
Shared test fixtures.

These replace real infrastructure with lightweight local alternatives:
- SQLite database file → a fresh file under pytest's tmp_path per test
- Microsoft Graph / Zoho People → in-memory fakes from tests/fakes.py
- Wall clock → FixedClock, moved explicitly by the test
- HTTP server → httpx.AsyncClient with ASGI transport (no network)

This means tests:
- Run without credentials or network
- Are fully isolated (each test gets its own database file)
- Are deterministic (time only moves when a test says so)
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from api.main import create_app
from config.settings import Settings
from scheduler.dedup import DedupIndex
from services.runtime import build_runtime
from store.job_store import JobStore
from tests.fakes import FakeDirectoryClient, FakeHRClient, FixedClock, RecordingNotifier


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(tmp_path, clock):
    """A migrated JobStore on a throwaway SQLite file."""
    s = JobStore.open(str(tmp_path / "jobs.sqlite"), clock=clock)
    yield s
    s.close()


@pytest.fixture
def dedup(store):
    return DedupIndex(store, tolerance=timedelta(seconds=60), cooldown=timedelta(minutes=3))


@pytest.fixture
def directory():
    return FakeDirectoryClient()


@pytest.fixture
def hr():
    return FakeHRClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def test_settings(tmp_path):
    """Settings with defaults only: no .env, no environment leakage."""
    return Settings(
        _env_file=None,
        DATABASE_PATH=str(tmp_path / "jobs.sqlite"),
        MAX_CONCURRENT_JOBS=2,
        BACKOFF_JITTER=0.0,
        DIRECTORY_DEFAULT_DOMAIN="corp.example",
    )


@pytest.fixture
def runtime(test_settings, store, directory, hr, notifier, clock):
    rt = build_runtime(test_settings, store=store, directory=directory, hr=hr, notifier=notifier, clock=clock)
    yield rt
    rt.ticker.stop()
    rt.pool.stop()


@pytest_asyncio.fixture
async def client(runtime):
    """
    Test HTTP client that talks directly to the FastAPI app.

    The app gets the test Runtime (temp store, fake directory) and does not
    start its own ticker. ASGITransport means requests go directly to the
    app in-process, no HTTP server or network involved.
    """
    app = create_app(runtime=runtime, run_scheduler=False)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
