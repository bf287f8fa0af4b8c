"""External send — deliver a mapped payload to a tenant's webhook destination.

Destinations are looked up by id within the tenant. Every URL passes an
SSRF check before use, preview mode returns a simulated response without
any network I/O, and live mode POSTs JSON with a timeout and without
following redirects.
"""

import ipaddress
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from blocks.schemas import ExternalSendBlockConfig
from core.constants import ExecutionMode
from core.utils import redact
from db.models.external_destination import ExternalDestination
from services.base import BaseService
from workflow.variables import resolve_payload_mappings

logger = structlog.get_logger(__name__)


def _is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is private, loopback, link-local or reserved."""
    try:
        ip = ipaddress.ip_address(ip_str)
        return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved
    except ValueError:
        return False


def validate_url_safety(url: Any) -> None:
    """Validate a destination URL for SSRF protection.

    Blocks:
    - Non-HTTP(S) schemes
    - localhost and private/loopback/link-local IPs
    - Internal service ports (``EXTERNAL_SEND_BLOCKED_PORTS``)

    Raises:
        ValueError: If URL is unsafe
    """
    if not isinstance(url, str) or not url:
        raise ValueError("Invalid URL format")

    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        raise ValueError(f"Invalid URL: {e}")

    if parsed.scheme.lower() not in ("http", "https"):
        raise ValueError("Only HTTP and HTTPS protocols are allowed")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValueError("URL must have a valid hostname")

    if hostname in ("localhost", "127.0.0.1", "::1") or hostname.endswith(".localhost"):
        raise ValueError("Requests to localhost are not allowed")

    # Domain names are not resolved here
    if _is_private_ip(hostname):
        raise ValueError("Requests to internal IP addresses are not allowed")

    if port and port in get_settings().EXTERNAL_SEND_BLOCKED_PORTS:
        raise ValueError(f"Connections to internal port {port} are not allowed")


@dataclass
class ExternalSendResult:
    success: bool
    status_code: Optional[int] = None
    response_body: Any = None
    error: Optional[str] = None
    simulated: bool = False


class ExternalDestinationService(BaseService[ExternalDestination]):
    def __init__(self, db: AsyncSession):
        super().__init__(ExternalDestination, db)

    async def get_destination(self, destination_id: str, tenant_id: str) -> Optional[ExternalDestination]:
        return await self.get_by_id_and_tenant(destination_id, tenant_id)


class ExternalSendRunner:
    """Resolve, guard and dispatch one external send.

    ``transport`` lets callers (and tests) route requests through a custom
    ``httpx`` transport such as ``httpx.MockTransport``.
    """

    def __init__(
        self,
        db: AsyncSession,
        destinations: Optional[ExternalDestinationService] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.destinations = destinations or ExternalDestinationService(db)
        self.transport = transport

    async def execute(
        self,
        config: ExternalSendBlockConfig,
        data: Mapping[str, Any],
        tenant_id: str,
        alias_map: Optional[Mapping[str, str]] = None,
        mode: str = ExecutionMode.LIVE.value,
    ) -> ExternalSendResult:
        payload = resolve_payload_mappings(config.payload_mappings, data, alias_map)

        destination = await self.destinations.get_destination(config.destination_id, tenant_id)
        if destination is None:
            return ExternalSendResult(success=False, error=f"Destination not found: {config.destination_id}")

        dest_config = destination.config or {}
        url = dest_config.get("url")
        try:
            validate_url_safety(url)
        except ValueError as e:
            logger.warning("Blocked SSRF attempt", destination_id=destination.id, url=url, error=str(e))
            return ExternalSendResult(success=False, error=f"Security: {e}")

        if mode == ExecutionMode.PREVIEW.value:
            logger.info(
                "Simulating external send",
                destination=destination.name,
                payload=redact(payload),
            )
            return ExternalSendResult(
                success=True,
                simulated=True,
                response_body={"message": "Simulated success", "payload": payload},
            )

        return await self._dispatch(destination, url, payload)

    async def _dispatch(
        self,
        destination: ExternalDestination,
        url: str,
        payload: dict[str, Any],
    ) -> ExternalSendResult:
        settings = get_settings()
        dest_config = destination.config or {}
        headers = {"Content-Type": "application/json", **(dest_config.get("headers") or {})}
        method = str(dest_config.get("method") or "POST").upper()

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=settings.EXTERNAL_SEND_TIMEOUT_SECONDS,
                follow_redirects=False,
            ) as client:
                response = await client.request(method, url, json=payload, headers=headers)

        except httpx.TimeoutException:
            logger.error("External send timed out", destination=destination.name, url=url)
            return ExternalSendResult(
                success=False,
                error=f"Request timed out after {settings.EXTERNAL_SEND_TIMEOUT_SECONDS:g} seconds",
            )
        except httpx.HTTPError as e:
            logger.error("External send failed", destination=destination.name, error=str(e))
            return ExternalSendResult(success=False, error=f"Request failed: {e}")

        try:
            response_body = response.json()
        except ValueError:
            response_body = response.text

        success = response.is_success
        logger.info(
            "External send completed",
            destination=destination.name,
            success=success,
            status=response.status_code,
        )
        return ExternalSendResult(
            success=success,
            status_code=response.status_code,
            response_body=response_body,
            error=None if success else f"External destination returned HTTP {response.status_code}",
        )
