"""Tests for table reads: read_table and query blocks, filters and the identifier guard."""

from uuid import uuid4

import pytest

from blocks.registry import BlockRegistry
from blocks.types import BlockDefinition
from core.exceptions import ForbiddenError, NotFoundError
from db.models.query import WorkflowQuery
from services.datavault_service import DatavaultService
from services.json_filters import is_safe_identifier


def _read_block(config, **kwargs):
    return BlockDefinition(id=kwargs.pop("id", "read-1"), type="read_table", phase="onSectionEnter", config=config, **kwargs)


@pytest.mark.unit
def test_safe_identifier():
    assert is_safe_identifier("status")
    assert is_safe_identifier("col_1-a")
    assert not is_safe_identifier("foo; DROP TABLE x")
    assert not is_safe_identifier("a.b")
    assert not is_safe_identifier("status\n")
    assert not is_safe_identifier("")
    assert not is_safe_identifier(None)


@pytest.mark.integration
class TestDatavaultService:

    async def test_ownership(self, db_session, customers_table, tenant, other_tenant):
        datavault = DatavaultService(db_session)
        assert (await datavault.verify_tenant_ownership(customers_table.id, tenant.id)).id == customers_table.id

        with pytest.raises(ForbiddenError, match="different tenant"):
            await datavault.verify_tenant_ownership(customers_table.id, other_tenant.id)
        with pytest.raises(NotFoundError, match="Table not found"):
            await datavault.verify_tenant_ownership("missing", tenant.id)

    async def test_filters(self, db_session, customers_table, tenant):
        datavault = DatavaultService(db_session)

        async def count(*filters):
            rows = await datavault.query_rows(customers_table.id, tenant.id, filters=list(filters))
            return len(rows)

        assert await count({"columnId": "status", "operator": "equals", "value": "active"}) == 6
        assert await count({"columnId": "status", "operator": "not_equals", "value": "active"}) == 9
        assert await count({"columnId": "score", "operator": "greater_than", "value": "100"}) == 4
        assert await count({"columnId": "score", "operator": "less_or_equal", "value": 20}) == 3
        assert await count({"columnId": "name", "operator": "starts_with", "value": "Customer 1"}) == 5
        assert await count({"columnId": "name", "operator": "in", "value": "Customer 00, Customer 03"}) == 2
        assert await count({"columnId": "score", "operator": "equals", "value": "abc"}) == 0

    async def test_filters_without_value_are_dropped(self, db_session, customers_table, tenant):
        datavault = DatavaultService(db_session)
        rows = await datavault.query_rows(
            customers_table.id,
            tenant.id,
            filters=[
                {"columnId": "status", "operator": "equals", "value": None},
                {"columnId": "name", "operator": "contains", "value": ""},
                {"columnId": "name", "operator": "greater_than", "value": "A"},
            ],
        )
        assert len(rows) == 15

    async def test_injection_attempt_is_dropped(self, db_session, customers_table, tenant):
        datavault = DatavaultService(db_session)
        rows = await datavault.query_rows(
            customers_table.id,
            tenant.id,
            filters=[
                {"columnId": "foo; DROP TABLE x", "operator": "equals", "value": "1"},
                {"columnId": "status", "operator": "equals", "value": "active"},
            ],
        )
        assert len(rows) == 6
        assert await datavault.count_rows(customers_table.id, tenant.id) == 15

    async def test_rows_of_other_tenants_are_invisible(self, db_session, customers_table, other_tenant):
        datavault = DatavaultService(db_session)
        assert await datavault.query_rows(customers_table.id, other_tenant.id) == []


@pytest.mark.integration
class TestReadTableBlock:

    async def test_reads_full_table(self, block_deps, make_context, test_workflow, customers_table):
        block = _read_block({"tableId": customers_table.id, "outputKey": "customers"})
        result = await BlockRegistry(block_deps).execute(block, make_context(workflow_id=test_workflow.id))

        assert result.success
        customers = result.data["customers"]
        assert customers["count"] == 15
        assert [c["id"] for c in customers["columns"]] == ["name", "status", "score"]
        assert customers["metadata"]["source"] == "read_table"
        assert customers["metadata"]["sourceId"] == customers_table.id
        assert customers["metadata"]["tableName"] == "Customers"
        assert set(customers["rows"][0]) == {"id", "name", "status", "score"}

    async def test_filter_sort_limit_and_columns(self, block_deps, make_context, test_workflow, customers_table):
        block = _read_block(
            {
                "tableId": customers_table.id,
                "outputKey": "top",
                "columns": ["name", "score"],
                "filters": [{"columnId": "status", "operator": "equals", "value": "{{wanted}}"}],
                "sort": {"columnId": "score", "direction": "desc"},
                "limit": 2,
            }
        )
        context = make_context(workflow_id=test_workflow.id, data={"step-w": "active"}, alias_map={"wanted": "step-w"})
        result = await BlockRegistry(block_deps).execute(block, context)

        top = result.data["top"]
        assert [r["name"] for r in top["rows"]] == ["Customer 12", "Customer 10"]
        assert set(top["rows"][0]) == {"id", "name", "score"}
        assert top["metadata"]["filteredBy"] == ["status"]
        assert top["metadata"]["queryParams"]["filters"][0]["value"] == "{{wanted}}"

    async def test_unsafe_column_does_not_break_read(self, block_deps, make_context, test_workflow, customers_table):
        block = _read_block(
            {
                "tableId": customers_table.id,
                "outputKey": "rows",
                "filters": [{"columnId": "x' OR 1=1 --", "operator": "equals", "value": "1"}],
            }
        )
        result = await BlockRegistry(block_deps).execute(block, make_context(workflow_id=test_workflow.id))
        assert result.success
        assert result.data["rows"]["count"] == 15

    async def test_foreign_table_is_rejected(self, db_session, block_deps, make_context, test_workflow, other_tenant):
        foreign = await DatavaultService(db_session).create_table(other_tenant.id, "Secret", [{"id": "s", "name": "S"}])
        block = _read_block({"tableId": foreign.id, "outputKey": "rows"})
        result = await BlockRegistry(block_deps).execute(block, make_context(workflow_id=test_workflow.id))

        assert not result.success
        assert result.errors == ["Access denied - table belongs to different tenant"]

    async def test_run_condition(self, block_deps, make_context, test_workflow, customers_table):
        block = _read_block(
            {
                "tableId": customers_table.id,
                "outputKey": "rows",
                "runCondition": {"key": "load", "op": "equals", "value": "yes"},
            }
        )
        result = await BlockRegistry(block_deps).execute(block, make_context(workflow_id=test_workflow.id, data={"load": "no"}))
        assert result.success
        assert result.data == {}


@pytest.mark.integration
class TestQueryBlock:

    async def test_saved_query(self, db_session, block_deps, make_context, test_workflow, customers_table):
        query = WorkflowQuery(
            id=str(uuid4()),
            workflow_id=test_workflow.id,
            name="Active customers",
            table_id=customers_table.id,
            filters=[{"columnId": "status", "operator": "equals", "value": "{{status}}"}],
            sort={"columnId": "score", "direction": "asc"},
            limit=3,
        )
        db_session.add(query)
        await db_session.commit()

        block = BlockDefinition(
            id="q-1",
            type="query",
            phase="onSectionEnter",
            config={"queryId": query.id, "outputVariableName": "activeCustomers"},
        )
        result = await BlockRegistry(block_deps).execute(
            block, make_context(workflow_id=test_workflow.id, data={"status": "active"})
        )

        assert result.success
        listed = result.data["activeCustomers"]
        assert listed["count"] == 3
        assert [r["score"] for r in listed["rows"]] == [0, 20, 50]
        assert listed["metadata"]["source"] == "query"
        assert listed["metadata"]["sourceId"] == query.id

    async def test_missing_query(self, block_deps, make_context, test_workflow):
        block = BlockDefinition(
            id="q-1",
            type="query",
            phase="onSectionEnter",
            config={"queryId": "nope", "outputVariableName": "rows"},
        )
        result = await BlockRegistry(block_deps).execute(block, make_context(workflow_id=test_workflow.id))
        assert result.errors == ["Query definition not found: nope"]
