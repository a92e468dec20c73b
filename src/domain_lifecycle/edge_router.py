"""
Edge router registration for custom hostnames.

The edge router only serves hostnames it has been told about. Registration
binds a hostname to the configured worker service inside the DNS zone that
owns it. The owning zone is found with an indexed lookup of the hostname,
then one explicit lookup of its registrable root; zones are never scanned.
"""

from typing import Any, Optional

import httpx

from .audit_logger import AuditLogger
from .config import EdgeRouterConfig
from .domain_validator import registrable_root
from .enums import ProviderErrorCode
from .exceptions import ExternalProviderError
from .http_client import ProviderHTTPClient
from .models import ZoneInfo
from .providers import DNSProvider, EdgeRouter


class EdgeRouterClient(ProviderHTTPClient, EdgeRouter):
    """Workers-style custom domain API client."""

    PROVIDER = "edge_router"
    COMPONENT = "EdgeRouter"

    def __init__(
        self,
        config: EdgeRouterConfig,
        zones: DNSProvider,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            simulation_mode=simulation_mode,
            logger=logger,
            transport=transport,
        )
        self._config = config
        self._zones = zones
        self._sim_hostnames: set[str] = set()

    @property
    def registered_hostnames(self) -> set[str]:
        """Hostnames registered in simulation mode."""
        return set(self._sim_hostnames)

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_token}",
        }

    def _error_message(self, payload: Any, status_code: int) -> str:
        if isinstance(payload, dict):
            errors = payload.get("errors") or []
            if errors and isinstance(errors[0], dict) and errors[0].get("message"):
                return str(errors[0]["message"])
        return f"Edge router API error: {status_code}"

    @property
    def _domains_path(self) -> str:
        return f"/accounts/{self._config.account_id}/workers/domains"

    async def resolve_zone(self, hostname: str) -> Optional[ZoneInfo]:
        """Zone for hostname, trying the hostname itself then its registrable root."""
        zone = await self._zones.find_zone(hostname)
        if zone is not None:
            return zone
        root = registrable_root(hostname)
        if root != hostname:
            return await self._zones.find_zone(root)
        return None

    async def register(self, hostname: str) -> None:
        """
        Attach hostname to the worker service.

        An "already exists" answer counts as success.

        Raises:
            ExternalProviderError: If no zone owns the hostname or the API fails
        """
        if self._simulation_mode:
            self._sim_hostnames.add(hostname)
            return

        zone = await self.resolve_zone(hostname)
        if zone is None:
            raise self._error(
                ProviderErrorCode.NOT_FOUND,
                f"No DNS zone found for {hostname}",
                details={"hostname": hostname},
            )

        body = {
            "hostname": hostname,
            "service": self._config.service,
            "environment": self._config.environment,
            "zone_id": zone.zone_id,
        }
        try:
            payload = await self._request("PUT", self._domains_path, json_data=body)
        except ExternalProviderError as e:
            if "already exist" in e.message.lower():
                return
            raise

        if isinstance(payload, dict) and not payload.get("success", True):
            message = self._error_message(payload, 200)
            if "already exist" in message.lower():
                return
            raise self._error(ProviderErrorCode.CLIENT_ERROR, message, details={"body": payload})

        if self._logger:
            self._logger.info(self.COMPONENT, "Hostname registered", {"hostname": hostname, "zone_id": zone.zone_id})

    async def deregister(self, hostname: str) -> None:
        """Detach hostname; a hostname that is not registered is not an error."""
        if self._simulation_mode:
            self._sim_hostnames.discard(hostname)
            return

        payload = await self._request("GET", self._domains_path, params={"hostname": hostname})
        entries = (payload.get("result") or []) if isinstance(payload, dict) else []
        for entry in entries:
            if entry.get("hostname") != hostname:
                continue
            try:
                await self._request("DELETE", f"{self._domains_path}/{entry['id']}")
            except ExternalProviderError as e:
                if e.code != ProviderErrorCode.NOT_FOUND.value:
                    raise
        if self._logger:
            self._logger.info(self.COMPONENT, "Hostname deregistered", {"hostname": hostname})

    async def ping(self) -> bool:
        if self._simulation_mode:
            return True
        await self._request("GET", self._domains_path, params={"per_page": 1})
        return True
