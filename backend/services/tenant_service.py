"""Tenant resolution for workflows.

Workflows may be unfiled (no project), so the owning tenant is found
through the project first and the creator second. Any ambiguity or
lookup failure yields ``None``; callers must treat that as a hard stop.
"""

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.project import Project
from db.models.user import User
from db.models.workflow import Workflow

logger = structlog.get_logger(__name__)


class TenantResolver:
    """Resolve a workflow's owning tenant: project, then creator."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_tenant(self, workflow_id: str) -> Optional[str]:
        try:
            workflow = await self.db.get(Workflow, workflow_id)
            if workflow is None:
                logger.warning("Tenant resolution: workflow not found", workflow_id=workflow_id)
                return None

            if workflow.project_id:
                project = await self.db.get(Project, workflow.project_id)
                if project is not None and project.tenant_id:
                    return project.tenant_id

            if workflow.creator_id:
                creator = await self.db.get(User, workflow.creator_id)
                if creator is not None and creator.tenant_id:
                    return creator.tenant_id

        except SQLAlchemyError as e:
            logger.error("Tenant resolution failed", workflow_id=workflow_id, error=str(e))
            return None

        logger.warning(
            "Could not resolve tenant for workflow",
            workflow_id=workflow_id,
            project_id=workflow.project_id,
            creator_id=workflow.creator_id,
        )
        return None
