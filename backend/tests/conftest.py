import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from alertboard.categories.classifier import CategoryMap
from alertboard.config import settings
from alertboard.database import get_db
from alertboard.dependencies import get_category_map, get_ingestion_job, get_name_resolver
from alertboard.integrations.extraction import format_stamp
from alertboard.integrations.sync_scheduler import IngestionJob
from alertboard.issues.models import Issue
from alertboard.main import create_app
from alertboard.models.base import Base
from alertboard.names.resolver import NameResolver

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

CATEGORY_YAML = """\
categories:
  Storage:
    - tikv
    - pd
  Compute:
    - tidb
  Resilience:
    - br
"""

engine = create_async_engine(settings.TEST_DATABASE_URL, echo=False, poolclass=NullPool)
test_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def db():
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def make_issue(db: AsyncSession):
    """Insert an alert ticket created ``age`` before ``NOW``; keyword overrides win."""

    async def _make(id_: str, age: timedelta = timedelta(hours=1), now: datetime = NOW, **overrides) -> Issue:
        values = {
            "id": id_,
            "title": f"[PROD] alert {id_}",
            "description": "prometheus alert firing",
            "created": format_stamp(now - age),
            "priority": "Major",
            "project": "O11Y",
            "is_alert": True,
            "status": "Created",
            "stability_governance": "governed",
            "biz_type": "dedicated",
        }
        values.update(overrides)
        values.setdefault("alert_signature", values["title"])
        for key in ("labels", "components"):
            if isinstance(values.get(key), list):
                values[key] = json.dumps(values[key])
        issue = Issue(**values)
        db.add(issue)
        await db.commit()
        return issue

    return _make


@pytest.fixture
def category_map(tmp_path) -> CategoryMap:
    path = tmp_path / "component_categories.yaml"
    path.write_text(CATEGORY_YAML, encoding="utf-8")
    return CategoryMap(path)


@pytest.fixture
def name_resolver() -> NameResolver:
    # unconfigured: every numeric id falls back to itself
    return NameResolver("")


@pytest.fixture
def ingestion_job() -> IngestionJob:
    return IngestionJob(None)


@pytest_asyncio.fixture
async def client(category_map: CategoryMap, name_resolver: NameResolver, ingestion_job: IngestionJob):
    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_category_map] = lambda: category_map
    app.dependency_overrides[get_name_resolver] = lambda: name_resolver
    app.dependency_overrides[get_ingestion_job] = lambda: ingestion_job
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return test_session_factory
