"""Services shared by block runners within one database session."""

from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from integrations.external_send import ExternalSendRunner
from services.datavault_service import DatavaultService
from services.query_service import QueryRunner, WorkflowQueryService
from services.record_service import RecordService
from services.step_value_service import StepValueService
from services.tenant_service import TenantResolver
from services.write_service import WriteRunner


@dataclass
class BlockDependencies:
    session: AsyncSession
    tenant_resolver: TenantResolver
    step_values: StepValueService
    datavault: DatavaultService
    records: RecordService
    queries: WorkflowQueryService
    query_runner: QueryRunner
    write_runner: WriteRunner
    external_send: ExternalSendRunner


def build_block_dependencies(
    session: AsyncSession,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BlockDependencies:
    """Wire every runner collaborator onto ``session``.

    Args:
        session: Session owning the run's transaction
        transport: Optional httpx transport for external sends
    """
    datavault = DatavaultService(session)
    return BlockDependencies(
        session=session,
        tenant_resolver=TenantResolver(session),
        step_values=StepValueService(session),
        datavault=datavault,
        records=RecordService(session),
        queries=WorkflowQueryService(session),
        query_runner=QueryRunner(session, datavault),
        write_runner=WriteRunner(session, datavault),
        external_send=ExternalSendRunner(session, transport=transport),
    )
