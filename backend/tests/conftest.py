"""Shared pytest fixtures for the workflow block engine test suite.

Provides:
- In-memory async SQLite database (no PostgreSQL needed for tests)
- AsyncSession and session factory
- Pre-seeded test data (tenant, user, project, workflow, sections)
- Helpers to build blocks, contexts and a customers table
"""

import os
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from db.base import Base  # noqa: E402
from db.database import create_session_factory  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test; StaticPool shares one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session; seeded data is committed so engine sessions can read it."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def tenant(db_session):
    from db.models.tenant import Tenant

    tenant = Tenant(id=str(uuid4()), name="Acme")
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture
async def other_tenant(db_session):
    from db.models.tenant import Tenant

    tenant = Tenant(id=str(uuid4()), name="Globex")
    db_session.add(tenant)
    await db_session.commit()
    return tenant


@pytest_asyncio.fixture
async def test_user(db_session, tenant):
    from db.models.user import User

    user = User(
        id=str(uuid4()),
        tenant_id=tenant.id,
        email=f"author-{uuid4().hex[:8]}@example.com",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def project(db_session, tenant):
    from db.models.project import Project

    project = Project(id=str(uuid4()), tenant_id=tenant.id, name="Intake")
    db_session.add(project)
    await db_session.commit()
    return project


@pytest_asyncio.fixture
async def test_workflow(db_session, project, test_user):
    from db.models.workflow import Workflow

    workflow = Workflow(
        id=str(uuid4()),
        project_id=project.id,
        creator_id=test_user.id,
        name="Customer intake",
    )
    db_session.add(workflow)
    await db_session.commit()
    return workflow


@pytest_asyncio.fixture
async def sections(db_session, test_workflow):
    """Three sections in order: start, adult, minor."""
    from db.models.workflow import Section

    created = {}
    for order, title in enumerate(("start", "adult", "minor")):
        section = Section(
            id=str(uuid4()),
            workflow_id=test_workflow.id,
            title=title,
            order=order,
        )
        db_session.add(section)
        created[title] = section
    await db_session.commit()
    return created


@pytest_asyncio.fixture
async def age_step(db_session, sections):
    from db.models.step import Step

    step = Step(
        id=str(uuid4()),
        section_id=sections["start"].id,
        type="number",
        title="Age",
        alias="age",
        order=0,
    )
    db_session.add(step)
    await db_session.commit()
    return step


@pytest_asyncio.fixture
async def customers_table(db_session, tenant):
    """Customers table with 15 rows, 6 of them active."""
    from services.datavault_service import DatavaultService

    datavault = DatavaultService(db_session)
    table = await datavault.create_table(
        tenant.id,
        "Customers",
        [
            {"id": "name", "name": "Name", "type": "text"},
            {"id": "status", "name": "Status", "type": "text"},
            {"id": "score", "name": "Score", "type": "number"},
        ],
    )
    for i in range(15):
        await datavault.create_row(
            table.id,
            tenant.id,
            {
                "name": f"Customer {i:02d}",
                "status": "active" if i % 5 in (0, 2) else "inactive",
                "score": i * 10,
            },
        )
    await db_session.commit()
    return table


@pytest.fixture
def make_block(db_session):
    """Persist a block and return it."""
    from db.models.block import Block

    async def _make_block(workflow_id, block_type, phase, config, section_id=None, order=0, enabled=True):
        block = Block(
            id=str(uuid4()),
            workflow_id=workflow_id,
            section_id=section_id,
            type=block_type,
            phase=phase,
            order=order,
            enabled=enabled,
            config=config,
        )
        db_session.add(block)
        await db_session.commit()
        return block

    return _make_block


@pytest.fixture
def make_context():
    """Build a BlockContext with sensible defaults."""
    from blocks.types import BlockContext

    def _make_context(workflow_id="wf-1", data=None, phase="onSectionSubmit", **kwargs):
        return BlockContext(
            workflow_id=workflow_id,
            run_id=kwargs.pop("run_id", None),
            data=data or {},
            phase=phase,
            **kwargs,
        )

    return _make_context


@pytest_asyncio.fixture
async def block_deps(db_session):
    from blocks.dependencies import build_block_dependencies

    return build_block_dependencies(db_session)
