"""Tests for the service layer: step values, virtual steps and block lookups."""

import pytest
import pytest_asyncio

from db.models.run import WorkflowRun
from db.models.step import Step
from services.step_value_service import StepValueService
from services.virtual_step_service import VirtualStepService, output_key_for
from services.workflow_service import BlockService, SectionService, StepService


@pytest_asyncio.fixture
async def run(db_session, test_workflow):
    run = WorkflowRun(workflow_id=test_workflow.id, visited_section_ids=[], extra_data={})
    db_session.add(run)
    await db_session.flush()
    return run


@pytest.mark.integration
class TestStepValueService:

    async def test_upsert_overwrites(self, db_session, run, age_step):
        svc = StepValueService(db_session)
        first = await svc.upsert(run.id, age_step.id, "17")
        second = await svc.upsert(run.id, age_step.id, "18")

        assert first.id == second.id
        assert (await svc.get_value(run.id, age_step.id)).value == "18"
        assert await svc.values_by_step(run.id) == {age_step.id: "18"}

    async def test_values_are_per_run(self, db_session, run, test_workflow, age_step):
        other = WorkflowRun(workflow_id=test_workflow.id, visited_section_ids=[], extra_data={})
        db_session.add(other)
        await db_session.flush()

        svc = StepValueService(db_session)
        await svc.upsert(run.id, age_step.id, "30")
        assert await svc.values_by_step(other.id) == {}


@pytest.mark.integration
class TestSections:

    async def test_order(self, db_session, test_workflow, sections):
        svc = SectionService(db_session)
        assert (await svc.first_section(test_workflow.id)).id == sections["start"].id
        assert (await svc.next_section(test_workflow.id, sections["start"].id)).id == sections["adult"].id
        assert await svc.next_section(test_workflow.id, sections["minor"].id) is None


@pytest.mark.integration
class TestStepService:

    async def test_section_listing_hides_virtual_steps(self, db_session, sections, age_step):
        hidden = Step(section_id=sections["start"].id, type="computed", alias="rows", order=-1, is_virtual=True)
        later = Step(section_id=sections["start"].id, type="text", alias="name", order=3)
        db_session.add_all([hidden, later])
        await db_session.flush()

        steps = StepService(db_session)
        assert [s.id for s in await steps.find_by_section_id(sections["start"].id)] == [age_step.id, later.id]
        assert [s.id for s in await steps.find_by_section_id(sections["start"].id, include_virtual=True)] == [
            hidden.id,
            age_step.id,
            later.id,
        ]
        assert await steps.find_by_section_ids([]) == []


@pytest.mark.unit
def test_output_key_for():
    assert output_key_for("query", {"outputVariableName": "rows"}) == "rows"
    assert output_key_for("list_tools", {"outputListVar": "top"}) == "top"
    assert output_key_for("read_table", {"outputKey": "all"}) == "all"
    assert output_key_for("write", {"outputKey": "rowId"}) == "rowId"
    assert output_key_for("branch", {"outputKey": "x"}) is None


@pytest.mark.integration
class TestVirtualSteps:

    async def test_workflow_scoped_block_uses_first_section(
        self, db_session, make_block, test_workflow, sections, customers_table
    ):
        block = await make_block(test_workflow.id, "read_table", "onRunStart", {"tableId": customers_table.id, "outputKey": "all"})
        step = await VirtualStepService(db_session).ensure_virtual_step(block)

        assert step.section_id == sections["start"].id
        assert step.is_virtual
        assert step.alias == "all"
        assert block.virtual_step_id == step.id

    async def test_ensure_is_stable_and_follows_alias(self, db_session, make_block, test_workflow, sections):
        block = await make_block(
            test_workflow.id,
            "list_tools",
            "onSectionEnter",
            {"sourceListVar": "all", "outputListVar": "top"},
            section_id=sections["adult"].id,
        )
        svc = VirtualStepService(db_session)
        step = await svc.ensure_virtual_step(block)

        block.config = {"sourceListVar": "all", "outputListVar": "best"}
        again = await svc.ensure_virtual_step(block)

        assert again.id == step.id
        assert again.alias == "best"
        assert again.section_id == sections["adult"].id

    async def test_non_output_block_and_empty_workflow(self, db_session, make_block, test_workflow):
        svc = VirtualStepService(db_session)
        branch = await make_block(test_workflow.id, "branch", "onNext", {})
        assert await svc.ensure_virtual_step(branch) is None

        # no sections yet
        write = await make_block(test_workflow.id, "write", "onRunComplete", {"tableId": "t", "outputKey": "r"})
        assert await svc.ensure_virtual_step(write) is None

    async def test_virtual_steps_hidden_from_regular_listing(self, db_session, make_block, test_workflow, sections, age_step):
        block = await make_block(test_workflow.id, "write", "onRunComplete", {"tableId": "t", "outputKey": "saved"})
        await VirtualStepService(db_session).ensure_virtual_step(block)

        steps = StepService(db_session)
        assert [s.id for s in await steps.find_by_workflow(test_workflow.id)] == [age_step.id]
        assert await steps.alias_map(test_workflow.id) == {"age": age_step.id, "saved": block.virtual_step_id}

    async def test_persist(self, db_session, make_block, test_workflow, sections, run):
        block = await make_block(test_workflow.id, "query", "onSectionEnter", {"queryId": "q", "outputVariableName": "rows"})
        svc = VirtualStepService(db_session)
        step = await svc.ensure_virtual_step(block)

        await svc.persist(run.id, step.id, {"count": 0})
        assert (await StepValueService(db_session).get_value(run.id, step.id)).value == {"count": 0}


@pytest.mark.integration
class TestBlockService:

    async def test_delete_block_removes_virtual_step(self, db_session, make_block, test_workflow, sections):
        block = await make_block(test_workflow.id, "read_table", "onSectionEnter", {"tableId": "t", "outputKey": "rows"})
        step = await VirtualStepService(db_session).ensure_virtual_step(block)
        step_id = step.id

        assert await BlockService(db_session).delete_block(block.id) is True
        assert await db_session.get(Step, step_id) is None
        assert await BlockService(db_session).delete_block(block.id) is False

    async def test_list_for_phase_scope(self, db_session, make_block, test_workflow, sections):
        start, adult = sections["start"].id, sections["adult"].id
        wide = await make_block(test_workflow.id, "prefill", "onSectionEnter", {}, order=5)
        mine = await make_block(test_workflow.id, "prefill", "onSectionEnter", {}, section_id=start, order=1)
        await make_block(test_workflow.id, "prefill", "onSectionEnter", {}, section_id=adult)
        await make_block(test_workflow.id, "prefill", "onSectionEnter", {}, section_id=start, enabled=False)
        await make_block(test_workflow.id, "prefill", "onNext", {}, section_id=start)

        svc = BlockService(db_session)
        assert [b.id for b in await svc.list_for_phase(test_workflow.id, "onSectionEnter", start)] == [mine.id, wide.id]
        assert [b.id for b in await svc.list_for_phase(test_workflow.id, "onSectionEnter")] == [wide.id]
