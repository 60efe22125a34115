"""Shared fixtures.

The environment is set before ``learnpath`` is imported: settings are
cached and the application configures logging at import time.
"""

import os
import tempfile


os.environ["ENVIRONMENT"] = "testing"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["REDIS_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="learnpath-logs-")
os.environ["AUTH_SECRET_KEY"] = "test-secret-key-for-learnpath-tests-32chars"

from collections.abc import Callable, Iterator  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from learnpath.auth.permissions import UserRole  # noqa: E402
from learnpath.auth.schemas import AuthenticatedUser  # noqa: E402
from learnpath.awards.repository import InMemoryUserStatsStore  # noqa: E402
from learnpath.catalog.models import CatalogModule, ContentItem, ContentType  # noqa: E402
from learnpath.catalog.repository import InMemoryContentCatalog  # noqa: E402
from learnpath.config import get_settings  # noqa: E402
from learnpath.core.locks import InProcessKeyedLock  # noqa: E402
from learnpath.enrollments.repository import InMemoryEnrollmentStore  # noqa: E402
from learnpath.progress.repository import InMemoryProgressStore  # noqa: E402
from learnpath.tracking.engine import TrackingEngine  # noqa: E402


def make_module(
    catalog: InMemoryContentCatalog,
    types: list[ContentType],
    *,
    module_id: UUID | None = None,
) -> tuple[CatalogModule, list[ContentItem]]:
    """Register a module with one item per entry of ``types``."""
    module = CatalogModule(id=module_id or uuid4(), title="Module")
    catalog.add_module(module)
    items = []
    for order, content_type in enumerate(types):
        item = ContentItem(
            id=uuid4(),
            module_id=module.id,
            type=content_type,
            order=order,
            title=f"{content_type.value} {order}",
        )
        catalog.add_content_item(item)
        items.append(item)
    return module, items


@pytest.fixture
def catalog() -> InMemoryContentCatalog:
    return InMemoryContentCatalog()


@pytest.fixture
def engine(catalog: InMemoryContentCatalog) -> TrackingEngine:
    """Tracking engine over in-memory stores and in-process locks."""
    return TrackingEngine.from_settings(
        get_settings(),
        catalog=catalog,
        progress_store=InMemoryProgressStore(),
        enrollment_store=InMemoryEnrollmentStore(),
        stats_store=InMemoryUserStatsStore(),
        locks=InProcessKeyedLock(blocking_timeout=5.0),
    )


@pytest.fixture
def student() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), role=UserRole.STUDENT)


@pytest.fixture
def other_student() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), role=UserRole.STUDENT)


@pytest.fixture
def admin() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), role=UserRole.ADMIN)


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client with a fresh in-memory engine per test."""
    from learnpath.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_catalog(client: TestClient) -> InMemoryContentCatalog:
    """Catalog of the engine the running app was started with."""
    return client.app.state.tracking_engine.catalog


def create_token(
    user_id: UUID,
    role: UserRole = UserRole.STUDENT,
    *,
    token_type: str = "access",
    expires_in: timedelta = timedelta(minutes=15),
) -> str:
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "type": token_type,
        "exp": datetime.now(UTC) + expires_in,
    }
    return jwt.encode(
        payload, settings.auth_secret_key, algorithm=settings.auth_algorithm
    )


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Factory of Authorization headers for a user id and role."""

    def _headers(
        user_id: UUID, role: UserRole = UserRole.STUDENT
    ) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_token(user_id, role)}"}

    return _headers


@pytest.fixture
def module_factory() -> Callable[..., tuple[CatalogModule, list[ContentItem]]]:
    """``make_module`` as a fixture: ``module_factory(catalog, [types...])``."""
    return make_module


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return create_token
