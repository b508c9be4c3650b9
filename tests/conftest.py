"""Pytest configuration and fixtures."""
import logging
from collections import deque
from typing import Any, Optional, Union
from unittest.mock import MagicMock

import pytest
import pytest_asyncio


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work (e.g. in Docker when pyproject not in cwd)."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    # httpx/httpcore debug logs drown out the orchestrator's own lines.
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine

from conductor.api.dependencies import Runtime, get_runtime
from conductor.api.routes._shared import limiter
from conductor.config import settings
from conductor.core.authorization import AuthorizationGate
from conductor.core.context import ExecutionContext
from conductor.core.enrichment import EnrichmentPipeline
from conductor.core.llm_client import LLMResponse
from conductor.core.tools.catalog import Collaborators, build_tool_registry
from conductor.db import database
from conductor.db.database import Base
from conductor.db.models import Project
from conductor.main import app
from conductor.services.feedback import FeedbackStore
from conductor.services.projects import ProjectStore
from conductor.services.storage import StorageError
from conductor.services.style_extraction import StyleExtractor
from conductor.services.tiers import Tier
from conductor.services.video_analysis import VideoAnalyzer
from conductor.services.youtube import YouTubeService

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"
TEST_TOKEN_SECRET = "test-secret-0123456789abcdef0123456789abcdef0123456789abcdef"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    """Deterministic, fast settings for every test."""
    monkeypatch.setattr(settings, "access_token_secret", TEST_TOKEN_SECRET)
    monkeypatch.setattr(settings, "stream_chunk_delay_ms", 0)
    monkeypatch.setattr(settings, "retry_initial_delay", 0.0)
    monkeypatch.setattr(settings, "grounding_enabled", False)
    monkeypatch.setattr(limiter, "enabled", False)


@pytest_asyncio.fixture
async def db_session():
    """In-memory database bound for the duration of one test."""
    url = "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(url, **database.engine_options(url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Services open their own sessions through database.new_session()
    previous = (database._engine, database._session_factory)
    database.bind(engine)
    try:
        async with database.new_session() as session:
            yield session
    finally:
        database._engine, database._session_factory = previous
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session):
    """Create an async test client backed by the in-memory DB."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -----------------------------------------------------------------------------
# Auth fixtures
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_user(db_session):
    """A pro-tier caller."""
    from conductor.db.models import User
    user = User(id=TEST_USER_ID, tier="pro")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def auth_token(test_user):
    """JWT for test_user (1 hour)."""
    from conductor.auth.tokens import create_access_token
    return create_access_token(user_id=test_user.id, expires_hours=1)


@pytest.fixture
def auth_headers(auth_token):
    """Headers with Bearer token and JSON content type."""
    return {
        "Authorization": f"Bearer {auth_token}",
        "Content-Type": "application/json",
    }


# -----------------------------------------------------------------------------
# Collaborator fakes
# -----------------------------------------------------------------------------

class ScriptedModel:
    """ReasoningModel that replays queued responses and records every call.

    Queue ``Exception`` instances to make a call fail.  Running out of
    responses is a test bug and fails loudly.
    """

    def __init__(self, *responses: Union[LLMResponse, Exception]):
        self.responses = deque(responses)
        self.calls: list[dict[str, Any]] = []

    async def chat_completion(
        self,
        messages,
        tools=None,
        tool_choice=None,
        temperature=None,
        max_tokens=None,
    ) -> LLMResponse:
        self.calls.append({
            "messages": list(messages),
            "tools": tools,
            "tool_choice": tool_choice,
            "temperature": temperature,
        })
        if not self.responses:
            raise AssertionError("ScriptedModel has no response left for this call")
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def tool_free_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["tools"]]


class FakeIdentity:
    def __init__(self, tier: Tier = Tier.PRO, connected: bool = True):
        self.tier = tier
        self.connected = connected
        self.lookups = 0

    async def get_tier(self, caller_id: str) -> Tier:
        self.lookups += 1
        return self.tier

    async def is_integration_connected(self, caller_id: str) -> bool:
        return self.connected


class FakeStorage:
    """Dict-backed StorageService.  Every signing yields a different query string."""

    def __init__(self, fail_paths: Optional[set[str]] = None):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.uploads = 0
        self.signatures = 0
        self.fail_paths = fail_paths or set()

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        if path in self.fail_paths:
            raise StorageError("upload failed", bucket, path)
        self.uploads += 1
        self.objects[(bucket, path)] = data
        return await self.create_signed_url(bucket, path, 60)

    async def exists(self, bucket: str, path: str) -> bool:
        return (bucket, path) in self.objects

    async def create_signed_url(self, bucket: str, path: str, ttl: int) -> str:
        self.signatures += 1
        return f"https://storage.test/{bucket}/{path}?sig={self.signatures}"


class FakeFaceStore:
    def __init__(self) -> None:
        self.faces: dict[tuple[str, str], str] = {}
        self.created = 0

    async def get_or_create(self, user_id: str, source_digest: str, name: str, image_url: str) -> str:
        key = (user_id, source_digest)
        if key not in self.faces:
            self.created += 1
            self.faces[key] = f"face-{self.created}"
        return self.faces[key]


@pytest.fixture
def scripted_model():
    """Factory: ``scripted_model(resp1, resp2, ...)``."""
    return ScriptedModel


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def make_identity():
    """Factory: ``make_identity(tier=Tier.FREE, connected=False)``."""
    return FakeIdentity


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def faces():
    return FakeFaceStore()


@pytest.fixture
def collaborators() -> Collaborators:
    """Spec'd mocks for every collaborator behind the tool registry."""
    youtube = MagicMock(spec=YouTubeService)
    youtube.search_videos.return_value = {"videos": [{"videoId": "dQw4w9WgXcQ", "title": "Result"}]}
    youtube.list_my_videos.return_value = {"videos": [], "nextPageToken": None}
    youtube.get_channel_info.return_value = {"title": "My Channel", "subscriberCount": 1200}
    youtube.get_channel_analytics.return_value = {"views": 4200, "estimatedMinutesWatched": 910}
    youtube.update_video_title.return_value = {"videoId": "dQw4w9WgXcQ", "title": "New title"}

    async def _create(user_id: str, name: str, description: Optional[str] = None) -> Project:
        return Project(id="proj-1", user_id=user_id, name=name, description=description)

    projects = MagicMock(spec=ProjectStore)
    projects.create.side_effect = _create

    feedback = MagicMock(spec=FeedbackStore)
    feedback.submit.return_value = "fb-1"

    analyzer = MagicMock(spec=VideoAnalyzer)
    analyzer.analyze.return_value = {"videoId": "dQw4w9WgXcQ", "summary": "A music video"}

    extractor = MagicMock(spec=StyleExtractor)
    extractor.extract.return_value = {"styleId": "style-1", "name": "Bold"}

    return Collaborators(
        youtube=youtube,
        projects=projects,
        feedback=feedback,
        video_analyzer=analyzer,
        style_extractor=extractor,
    )


@pytest.fixture
def registry(collaborators):
    return build_tool_registry(collaborators, settings)


@pytest.fixture
def gate():
    return AuthorizationGate()


@pytest.fixture
def make_ctx():
    """Factory for ``ExecutionContext`` (pro + connected by default)."""
    def _make(tier: Tier = Tier.PRO, connected: bool = True, **kwargs: Any) -> ExecutionContext:
        return ExecutionContext(
            caller_id=kwargs.pop("caller_id", "user-1"),
            tier=tier,
            integration_connected=connected,
            trace_id=kwargs.pop("trace_id", "trace-0001-abcd"),
            **kwargs,
        )
    return _make


@pytest.fixture
def install_runtime(registry, gate, storage, faces):
    """Swap the app runtime for one built on fakes: ``install_runtime(model, identity)``."""
    def _install(model: ScriptedModel, identity: FakeIdentity) -> Runtime:
        runtime = Runtime(
            model=model,
            registry=registry,
            gate=gate,
            identity=identity,
            enrichment=EnrichmentPipeline(storage, faces, config=settings),
        )
        app.dependency_overrides[get_runtime] = lambda: runtime
        return runtime

    yield _install
    app.dependency_overrides.pop(get_runtime, None)
