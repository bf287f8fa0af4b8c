"""Collection records — slug-keyed records owned by a tenant."""

from typing import Any, Iterable, Mapping, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ForbiddenError, NotFoundError
from db.models.collection import Collection, CollectionRecord
from services.base import BaseService
from services.json_filters import build_filter_clause

logger = structlog.get_logger(__name__)


def record_to_dict(record: CollectionRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "collectionId": record.collection_id,
        "data": dict(record.data or {}),
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


class RecordService(BaseService[CollectionRecord]):
    """Create, update, find and delete collection records."""

    def __init__(self, db: AsyncSession):
        super().__init__(CollectionRecord, db)

    async def verify_collection(self, collection_id: str, tenant_id: str) -> Collection:
        collection = await self.db.get(Collection, collection_id)
        if collection is None:
            raise NotFoundError(f"Collection not found: {collection_id}")
        if collection.tenant_id != tenant_id:
            logger.warning(
                "Cross-tenant collection access blocked",
                collection_id=collection_id,
                tenant_id=tenant_id,
            )
            raise ForbiddenError("Access denied - collection belongs to different tenant")
        return collection

    async def create_collection(self, tenant_id: str, name: str, slug: Optional[str] = None) -> Collection:
        collection = Collection(tenant_id=tenant_id, name=name, slug=slug or name.lower().replace(" ", "-"))
        self.db.add(collection)
        await self.db.flush()
        return collection

    async def create_record(
        self,
        tenant_id: str,
        collection_id: str,
        data: Mapping[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> CollectionRecord:
        """Create a record; a repeated ``idempotency_key`` returns the first one."""
        await self.verify_collection(collection_id, tenant_id)

        if idempotency_key:
            result = await self.db.execute(
                select(CollectionRecord).where(
                    CollectionRecord.collection_id == collection_id,
                    CollectionRecord.tenant_id == tenant_id,
                    CollectionRecord.idempotency_key == idempotency_key,
                )
            )
            existing = result.scalars().first()
            if existing is not None:
                logger.info("Record already created for idempotency key", record_id=existing.id)
                return existing

        return await self.create({
            "tenant_id": tenant_id,
            "collection_id": collection_id,
            "data": dict(data),
            "idempotency_key": idempotency_key,
        })

    async def update_record(
        self,
        tenant_id: str,
        collection_id: str,
        record_id: str,
        data: Mapping[str, Any],
    ) -> CollectionRecord:
        await self.verify_collection(collection_id, tenant_id)
        record = await self.get_by_id_and_tenant(record_id, tenant_id)
        if record is None or record.collection_id != collection_id:
            raise NotFoundError(f"Record not found: {record_id}")
        record.data = {**(record.data or {}), **dict(data)}
        await self.db.flush()
        return record

    async def find_by_filters(
        self,
        tenant_id: str,
        collection_id: str,
        filters: Iterable[Mapping[str, Any]] = (),
        limit: int = 1,
        offset: int = 0,
    ) -> Sequence[dict[str, Any]]:
        """Records matching every filter, oldest first.

        Filters are ``{fieldSlug, operator, value}``; ``columnId`` is accepted
        in place of ``fieldSlug``.
        """
        await self.verify_collection(collection_id, tenant_id)

        query = select(CollectionRecord).where(
            CollectionRecord.collection_id == collection_id,
            CollectionRecord.tenant_id == tenant_id,
        )
        for f in filters or []:
            clause = build_filter_clause(
                CollectionRecord.data,
                f.get("fieldSlug") or f.get("columnId"),
                f.get("operator") or "equals",
                f.get("value"),
            )
            if clause is not None:
                query = query.where(clause)

        query = query.order_by(CollectionRecord.created_at.asc()).offset(offset).limit(max(limit, 1))
        result = await self.db.execute(query)
        return [record_to_dict(r) for r in result.scalars().all()]

    async def delete_record(self, tenant_id: str, collection_id: str, record_id: str) -> None:
        await self.verify_collection(collection_id, tenant_id)
        record = await self.get_by_id_and_tenant(record_id, tenant_id)
        if record is None or record.collection_id != collection_id:
            raise NotFoundError(f"Record not found: {record_id}")
        await self.db.delete(record)
        await self.db.flush()
