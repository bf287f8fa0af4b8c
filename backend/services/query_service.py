"""Named workflow queries executed against datavault tables."""

from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.query import WorkflowQuery
from services.base import BaseService
from services.datavault_service import DatavaultService
from workflow.list_pipeline import ListVariable
from workflow.variables import resolve_filter_values

logger = structlog.get_logger(__name__)


class WorkflowQueryService(BaseService[WorkflowQuery]):
    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowQuery, db)


class QueryRunner:
    """Execute a saved query with the run's data bound into its filters."""

    def __init__(self, db: AsyncSession, datavault: Optional[DatavaultService] = None):
        self.db = db
        self.datavault = datavault or DatavaultService(db)

    async def execute_query(
        self,
        query: WorkflowQuery,
        data: Mapping[str, Any],
        tenant_id: str,
        alias_map: Optional[Mapping[str, str]] = None,
    ) -> ListVariable:
        """Run ``query`` for ``tenant_id`` and return a List Variable.

        Raises:
            NotFoundError: The query's table does not exist
            ForbiddenError: The query's table belongs to another tenant
        """
        filters = resolve_filter_values(query.filters, data, alias_map)

        logger.info(
            "Executing workflow query",
            query_id=query.id,
            table_id=query.table_id,
            filter_count=len(filters),
        )

        return await self.datavault.read_table_list(
            query.table_id,
            tenant_id,
            columns=query.columns or None,
            filters=filters,
            sort=query.sort,
            limit=query.limit,
            source="query",
            source_id=query.id,
            query_params={
                "filters": query.filters,
                "sort": query.sort,
                "limit": query.limit,
                "selectedColumns": query.columns,
            },
        )
