"""Tests for write blocks and the table write runner."""

import pytest

from blocks.registry import BlockRegistry
from blocks.schemas import WriteBlockConfig
from blocks.types import BlockDefinition
from db.models.run import WorkflowRun
from db.models.step import Step
from services.datavault_service import DatavaultService
from services.write_service import PREVIEW_ROW_ID, WriteRunner


def _write_block(config, **kwargs):
    return BlockDefinition(id=kwargs.pop("id", "write-1"), type="write", phase="onSectionSubmit", config=config, **kwargs)


@pytest.fixture
def registry(block_deps):
    return BlockRegistry(block_deps)


@pytest.mark.integration
class TestWriteRunner:

    async def test_match_validation(self, db_session, customers_table, tenant):
        runner = WriteRunner(db_session)

        config = WriteBlockConfig.model_validate({"tableId": customers_table.id, "mode": "update"})
        result = await runner.execute_write(config, {}, tenant.id)
        assert not result.success
        assert result.error == "update mode requires matchStrategy or primaryKeyColumnId/primaryKeyValue"

        config = WriteBlockConfig.model_validate(
            {"tableId": customers_table.id, "mode": "update", "matchStrategy": {"type": "column_match"}}
        )
        result = await runner.execute_write(config, {}, tenant.id)
        assert result.error == "Match strategy column_match requires columnId"

        config = WriteBlockConfig.model_validate(
            {
                "tableId": customers_table.id,
                "mode": "update",
                "matchStrategy": {"columnId": "name", "columnValue": "{{who}}"},
            }
        )
        result = await runner.execute_write(config, {}, tenant.id)
        assert result.error == "Match value is null/undefined for update mode"

    async def test_update_missing_row(self, db_session, customers_table, tenant):
        config = WriteBlockConfig.model_validate(
            {
                "tableId": customers_table.id,
                "mode": "update",
                "primaryKeyColumnId": "name",
                "primaryKeyValue": "Nobody",
                "columnMappings": [{"columnId": "status", "value": "gone"}],
            }
        )
        result = await WriteRunner(db_session).execute_write(config, {}, tenant.id)
        assert not result.success
        assert result.error == f"Row not found for Table {customers_table.id} where Column name = Nobody"

    async def test_foreign_table(self, db_session, customers_table, other_tenant):
        config = WriteBlockConfig.model_validate({"tableId": customers_table.id})
        result = await WriteRunner(db_session).execute_write(config, {}, other_tenant.id, is_preview=True)
        assert not result.success
        assert result.error == "Access denied - table belongs to different tenant"


@pytest.mark.integration
class TestWriteBlock:

    async def test_create_row(self, db_session, registry, make_context, test_workflow, customers_table, tenant):
        block = _write_block(
            {
                "tableId": customers_table.id,
                "mode": "create",
                "columnMappings": [
                    {"columnId": "name", "value": "{{fullName}}"},
                    {"columnId": "status", "value": "active"},
                    {"columnId": "score", "value": "points"},
                ],
                "outputKey": "newRowId",
            }
        )
        context = make_context(
            workflow_id=test_workflow.id,
            data={"step-n": "Ana Petrova", "points": 77},
            alias_map={"fullName": "step-n"},
        )
        result = await registry.execute(block, context)

        assert result.success
        row_id = result.data["newRowId"]
        datavault = DatavaultService(db_session)
        row = await datavault.find_row_by_column_value(customers_table.id, "name", "Ana Petrova", tenant.id)
        assert row.id == row_id
        assert row.data == {"name": "Ana Petrova", "status": "active", "score": 77}

    async def test_idempotency_key_prevents_duplicate_insert(
        self, db_session, registry, make_context, test_workflow, customers_table, tenant
    ):
        block = _write_block(
            {"tableId": customers_table.id, "columnMappings": [{"columnId": "name", "value": "Retry"}], "outputKey": "rid"}
        )
        context = make_context(workflow_id=test_workflow.id, idempotency_key="retry-token")

        first = await registry.execute(block, context)
        second = await registry.execute(block, context)

        assert first.data["rid"] == second.data["rid"]
        assert await DatavaultService(db_session).count_rows(customers_table.id, tenant.id) == 16

    async def test_update_merges_values(self, db_session, registry, make_context, test_workflow, customers_table, tenant):
        block = _write_block(
            {
                "tableId": customers_table.id,
                "mode": "update",
                "matchStrategy": {"type": "column_match", "columnId": "name", "columnValue": "{{who}}"},
                "columnMappings": [{"columnId": "status", "value": "vip"}],
            }
        )
        result = await registry.execute(block, make_context(workflow_id=test_workflow.id, data={"who": "Customer 03"}))

        assert result.success
        row = await DatavaultService(db_session).find_row_by_column_value(customers_table.id, "name", "Customer 03", tenant.id)
        assert row.data == {"name": "Customer 03", "status": "vip", "score": 30}

    async def test_upsert_creates_then_updates(self, db_session, registry, make_context, test_workflow, customers_table, tenant):
        block = _write_block(
            {
                "tableId": customers_table.id,
                "mode": "upsert",
                "primaryKeyColumnId": "name",
                "primaryKeyValue": "{{name}}",
                "columnMappings": [{"columnId": "name", "value": "name"}, {"columnId": "score", "value": "score"}],
            }
        )
        first = await registry.execute(block, make_context(workflow_id=test_workflow.id, data={"name": "New", "score": 1}))
        second = await registry.execute(block, make_context(workflow_id=test_workflow.id, data={"name": "New", "score": 2}))

        assert first.success and second.success
        datavault = DatavaultService(db_session)
        assert await datavault.count_rows(customers_table.id, tenant.id) == 16
        row = await datavault.find_row_by_column_value(customers_table.id, "name", "New", tenant.id)
        assert row.data["score"] == 2

    async def test_preview_simulates(self, db_session, registry, make_context, test_workflow, customers_table, tenant):
        block = _write_block(
            {"tableId": customers_table.id, "columnMappings": [{"columnId": "name", "value": "Ghost"}], "outputKey": "rid"},
            virtual_step_id="vs-1",
        )
        result = await registry.execute(
            block, make_context(workflow_id=test_workflow.id, mode="preview", run_id="run-1")
        )

        assert result.success
        assert result.data == {"rid": PREVIEW_ROW_ID}
        assert await DatavaultService(db_session).count_rows(customers_table.id, tenant.id) == 15
        assert await registry.deps.step_values.list_for_run("run-1") == []

    async def test_persists_virtual_step(self, db_session, registry, make_context, test_workflow, sections, customers_table):
        step = Step(section_id=sections["start"].id, type="computed", alias="rid", order=-1, is_virtual=True)
        run = WorkflowRun(workflow_id=test_workflow.id, visited_section_ids=[], extra_data={})
        db_session.add_all([step, run])
        await db_session.flush()

        block = _write_block(
            {"tableId": customers_table.id, "columnMappings": [{"columnId": "name", "value": "Kept"}], "outputKey": "rid"},
            virtual_step_id=step.id,
        )
        result = await registry.execute(block, make_context(workflow_id=test_workflow.id, run_id=run.id))

        assert result.success
        assert result.errors == []
        stored = await registry.deps.step_values.get_value(run.id, step.id)
        assert stored.value["rowId"] == result.data["rid"]
        assert stored.value["operation"] == "create"
        assert stored.value["writtenData"] == {"name": "Kept"}

    async def test_virtual_step_failure_is_a_warning(self, registry, make_context, test_workflow, customers_table, monkeypatch):
        async def broken_upsert(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(registry.deps.step_values, "upsert", broken_upsert)
        block = _write_block(
            {"tableId": customers_table.id, "columnMappings": [{"columnId": "name", "value": "W"}]},
            virtual_step_id="vs-1",
        )
        result = await registry.execute(block, make_context(workflow_id=test_workflow.id, run_id="run-1"))

        assert result.success
        assert result.errors == ["Warning: Failed to persist output to virtual step: disk full"]
