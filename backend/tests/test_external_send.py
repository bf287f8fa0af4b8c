"""Tests for external send blocks, URL safety checks and HTTP dispatch."""

import json
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from blocks.dependencies import build_block_dependencies
from blocks.registry import BlockRegistry
from blocks.types import BlockDefinition
from db.models.external_destination import ExternalDestination
from integrations.external_send import validate_url_safety


def _send_block(destination_id, mappings=None, **config):
    return BlockDefinition(
        id="send-1",
        type="external_send",
        phase="onRunComplete",
        config={"destinationId": destination_id, "payloadMappings": mappings or [], **config},
    )


async def _add_destination(db_session, tenant_id, url, **extra):
    destination = ExternalDestination(
        id=str(uuid4()),
        tenant_id=tenant_id,
        name="CRM webhook",
        config={"url": url, **extra},
    )
    db_session.add(destination)
    await db_session.commit()
    return destination


@pytest_asyncio.fixture
async def crm(db_session, tenant):
    return await _add_destination(db_session, tenant.id, "https://crm.example.com/hooks/intake", headers={"X-Api-Key": "k"})


@pytest.mark.unit
class TestUrlSafety:

    @pytest.mark.parametrize(
        "url, message",
        [
            ("ftp://example.com/x", "Only HTTP and HTTPS protocols are allowed"),
            ("http://localhost:8080/", "Requests to localhost are not allowed"),
            ("http://api.localhost/", "Requests to localhost are not allowed"),
            ("http://10.0.0.5/hook", "Requests to internal IP addresses are not allowed"),
            ("http://169.254.169.254/latest/meta-data", "Requests to internal IP addresses are not allowed"),
            ("http://example.com:6379/", "Connections to internal port 6379 are not allowed"),
            ("", "Invalid URL format"),
            (None, "Invalid URL format"),
        ],
    )
    def test_rejects_unsafe_urls(self, url, message):
        with pytest.raises(ValueError, match=message):
            validate_url_safety(url)

    def test_accepts_public_https(self):
        validate_url_safety("https://hooks.example.com:8443/path?q=1")


@pytest.mark.integration
class TestExternalSendBlock:

    async def test_live_send_posts_payload(self, db_session, make_context, test_workflow, crm):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "crm-42"})

        deps = build_block_dependencies(db_session, transport=httpx.MockTransport(handler))
        block = _send_block(crm.id, [{"key": "email", "value": "email"}, {"key": "tier", "value": "{{plan}}"}])
        context = make_context(
            workflow_id=test_workflow.id,
            data={"step-email": "ana@example.com", "plan": "gold"},
            alias_map={"email": "step-email"},
        )

        result = await BlockRegistry(deps).execute(block, context)

        assert result.success
        assert result.data == {crm.id: {"id": "crm-42"}}
        assert captured["method"] == "POST"
        assert captured["url"] == "https://crm.example.com/hooks/intake"
        assert captured["headers"]["x-api-key"] == "k"
        assert captured["body"] == {"email": "ana@example.com", "tier": "gold"}

    async def test_non_2xx_is_failure(self, db_session, make_context, test_workflow, crm):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        deps = build_block_dependencies(db_session, transport=transport)

        result = await BlockRegistry(deps).execute(_send_block(crm.id), make_context(workflow_id=test_workflow.id))

        assert not result.success
        assert result.errors == ["External destination returned HTTP 502"]
        assert result.data == {crm.id: "bad gateway"}

    async def test_timeout(self, db_session, make_context, test_workflow, crm):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        deps = build_block_dependencies(db_session, transport=httpx.MockTransport(handler))
        result = await BlockRegistry(deps).execute(_send_block(crm.id), make_context(workflow_id=test_workflow.id))

        assert not result.success
        assert result.errors == ["Request timed out after 30 seconds"]

    async def test_preview_does_not_send(self, db_session, make_context, test_workflow, crm):
        def handler(request):
            raise AssertionError("preview must not hit the network")

        deps = build_block_dependencies(db_session, transport=httpx.MockTransport(handler))
        block = _send_block(crm.id, [{"key": "source", "value": "intake"}])
        result = await BlockRegistry(deps).execute(block, make_context(workflow_id=test_workflow.id, mode="preview"))

        assert result.success
        assert result.data == {crm.id: {"message": "Simulated success", "payload": {"source": "intake"}}}

    async def test_unsafe_destination_is_blocked(self, db_session, make_context, test_workflow, tenant):
        internal = await _add_destination(db_session, tenant.id, "http://192.168.1.10/hook")
        deps = build_block_dependencies(db_session)

        result = await BlockRegistry(deps).execute(_send_block(internal.id), make_context(workflow_id=test_workflow.id))

        assert not result.success
        assert result.errors == ["Security: Requests to internal IP addresses are not allowed"]

    async def test_foreign_destination_is_not_found(self, db_session, make_context, test_workflow, other_tenant):
        foreign = await _add_destination(db_session, other_tenant.id, "https://other.example.com/")
        deps = build_block_dependencies(db_session)

        result = await BlockRegistry(deps).execute(_send_block(foreign.id), make_context(workflow_id=test_workflow.id))

        assert result.errors == [f"Destination not found: {foreign.id}"]

    async def test_run_condition_skips(self, db_session, make_context, test_workflow, crm):
        deps = build_block_dependencies(db_session)
        block = _send_block(crm.id, runCondition={"key": "consent", "op": "equals", "value": True})

        result = await BlockRegistry(deps).execute(block, make_context(workflow_id=test_workflow.id, data={"consent": False}))

        assert result.success
        assert result.data == {}
