"""
DNS hosting and edge TLS provider client.

Cloudflare-style REST API: every answer is an envelope of
``{"success": bool, "errors": [...], "result": ...}``. Zone creation and
record creation are idempotent; an "already exists" answer resolves to the
existing object instead of failing.
"""

import uuid
from typing import Any, Optional

import httpx

from .audit_logger import AuditLogger
from .config import DNSProviderConfig
from .enums import ProviderErrorCode
from .exceptions import ExternalProviderError
from .http_client import ProviderHTTPClient
from .models import ProviderRecord, ZoneInfo
from .providers import DNSProvider


# Provider error codes for duplicate zones and records
ZONE_EXISTS_CODES = frozenset({1061})
RECORD_EXISTS_CODES = frozenset({81053, 81057, 81058})

STRICT_TLS_SETTINGS = (
    ("ssl", "strict"),
    ("always_use_https", "on"),
    ("automatic_https_rewrites", "on"),
)


def _error_codes(error: ExternalProviderError) -> set[int]:
    body = error.details.get("body")
    if not isinstance(body, dict):
        return set()
    return {e.get("code") for e in body.get("errors", []) if isinstance(e, dict)}


def is_already_exists(error: ExternalProviderError, codes: frozenset) -> bool:
    """True when the provider rejected a create because the object exists."""
    if error.code == ProviderErrorCode.ALREADY_EXISTS.value:
        return True
    if _error_codes(error) & codes:
        return True
    return "already exist" in error.message.lower()


class DNSProviderClient(ProviderHTTPClient, DNSProvider):
    """
    Async client for zones, records and TLS settings.

    Authenticates with a scoped bearer token when one is configured, and
    falls back to account email plus global API key.
    """

    PROVIDER = "dns_provider"
    COMPONENT = "DNSProviderClient"

    def __init__(
        self,
        config: DNSProviderConfig,
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
        # Simulation state: zone_id -> (ZoneInfo, records)
        self._sim_zones: dict[str, tuple[ZoneInfo, list[ProviderRecord]]] = {}

    def _auth_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.uses_token_auth:
            headers["Authorization"] = f"Bearer {self._config.api_token}"
        else:
            headers["X-Auth-Email"] = self._config.account_email
            headers["X-Auth-Key"] = self._config.global_api_key
        return headers

    def _error_message(self, payload: Any, status_code: int) -> str:
        if isinstance(payload, dict):
            errors = payload.get("errors") or []
            if errors and isinstance(errors[0], dict) and errors[0].get("message"):
                return f"DNS provider API error: {errors[0]['message']}"
        return f"DNS provider API error: {status_code}"

    async def _call(
        self,
        method: str,
        path: str,
        json_data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Request and unwrap the envelope, raising when success is false."""
        payload = await self._request(method, path, json_data=json_data, params=params)
        if not isinstance(payload, dict):
            raise self._error(ProviderErrorCode.PARSE_ERROR, "DNS provider returned an unexpected body")
        if not payload.get("success", False):
            raise self._error(
                ProviderErrorCode.CLIENT_ERROR,
                self._error_message(payload, 200),
                details={"body": payload},
            )
        return payload.get("result")

    @staticmethod
    def _zone_from(result: dict, already_existed: bool = False) -> ZoneInfo:
        return ZoneInfo(
            zone_id=result.get("id", ""),
            name=result.get("name", ""),
            status=result.get("status", "pending"),
            nameservers=list(result.get("name_servers") or []),
            already_existed=already_existed,
        )

    @staticmethod
    def _record_from(result: dict) -> ProviderRecord:
        return ProviderRecord(
            id=result.get("id", ""),
            type=result.get("type", ""),
            name=result.get("name", ""),
            content=result.get("content", ""),
            proxied=bool(result.get("proxied", False)),
        )

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    async def find_zone(self, name: str) -> Optional[ZoneInfo]:
        """Single indexed lookup of a zone by exact name."""
        if self._simulation_mode:
            for zone, _ in self._sim_zones.values():
                if zone.name == name:
                    return ZoneInfo(zone.zone_id, zone.name, zone.status, list(zone.nameservers), True)
            return None

        result = await self._call("GET", "/zones", params={"name": name})
        if result:
            return self._zone_from(result[0], already_existed=True)
        return None

    async def create_or_get_zone(self, domain: str) -> ZoneInfo:
        """
        Return the zone for domain, creating it when absent.

        Calling twice returns the same zone id.
        """
        existing = await self.find_zone(domain)
        if existing:
            if self._logger:
                self._logger.debug(self.COMPONENT, "Using existing zone", {"domain": domain, "zone_id": existing.zone_id})
            return existing

        if self._simulation_mode:
            return self._simulated_zone(domain)

        try:
            result = await self._call(
                "POST",
                "/zones",
                json_data={"name": domain, "account": {"id": self._config.account_id}, "type": "full"},
            )
        except ExternalProviderError as e:
            if not is_already_exists(e, ZONE_EXISTS_CODES):
                raise
            # Created concurrently between our lookup and our create
            existing = await self.find_zone(domain)
            if existing is None:
                raise
            return existing

        zone = self._zone_from(result)
        if not zone.nameservers and zone.zone_id:
            details = await self._call("GET", f"/zones/{zone.zone_id}")
            zone.nameservers = list((details or {}).get("name_servers") or [])

        if self._logger:
            self._logger.info(
                self.COMPONENT,
                "Zone created",
                {"domain": domain, "zone_id": zone.zone_id, "nameservers": zone.nameservers},
            )
        return zone

    async def get_zone_status(self, zone_id: str) -> str:
        """Zone status string, 'active' once nameservers are delegated."""
        if self._simulation_mode:
            entry = self._sim_zones.get(zone_id)
            if entry is None:
                raise self._error(ProviderErrorCode.NOT_FOUND, f"Zone {zone_id} not found")
            return entry[0].status

        result = await self._call("GET", f"/zones/{zone_id}")
        return (result or {}).get("status", "pending")

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def list_records(
        self,
        zone_id: str,
        record_type: Optional[str] = None,
        name: Optional[str] = None,
    ) -> list[ProviderRecord]:
        if self._simulation_mode:
            records = self._sim_records(zone_id)
            return [
                r for r in records
                if (record_type is None or r.type == record_type) and (name is None or r.name == name)
            ]

        params = {"per_page": 100}
        if record_type:
            params["type"] = record_type
        if name:
            params["name"] = name
        result = await self._call("GET", f"/zones/{zone_id}/dns_records", params=params)
        return [self._record_from(r) for r in result or []]

    async def add_record(
        self,
        zone_id: str,
        record_type: str,
        name: str,
        content: str,
        proxied: bool = False,
    ) -> ProviderRecord:
        """Create a record; an identical existing record is returned as is."""
        if self._simulation_mode:
            records = self._sim_records(zone_id)
            for record in records:
                if record.type == record_type and record.name == name and record.content == content:
                    return record
            record = ProviderRecord(uuid.uuid4().hex, record_type, name, content, proxied)
            records.append(record)
            return record

        body = {"type": record_type, "name": name, "content": content, "ttl": 1}
        if record_type in ("A", "AAAA", "CNAME"):
            body["proxied"] = proxied
        try:
            result = await self._call("POST", f"/zones/{zone_id}/dns_records", json_data=body)
        except ExternalProviderError as e:
            if not is_already_exists(e, RECORD_EXISTS_CODES):
                raise
            existing = await self.list_records(zone_id, record_type=record_type, name=name)
            if self._logger:
                self._logger.debug(self.COMPONENT, "Record already exists", {"type": record_type, "name": name})
            if existing:
                return existing[0]
            return ProviderRecord("", record_type, name, content, proxied)
        return self._record_from(result or {})

    async def delete_record(self, zone_id: str, record_id: str) -> None:
        if self._simulation_mode:
            records = self._sim_records(zone_id)
            records[:] = [r for r in records if r.id != record_id]
            return
        await self._call("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")

    # ------------------------------------------------------------------
    # TLS
    # ------------------------------------------------------------------

    async def enable_strict_tls(self, zone_id: str) -> dict[str, bool]:
        """
        Turn on strict TLS, HTTPS redirects and HTTPS rewrites.

        Each setting is applied independently; the returned map says which
        ones took effect. Failures are logged, never raised.
        """
        applied: dict[str, bool] = {}
        for setting, value in STRICT_TLS_SETTINGS:
            if self._simulation_mode:
                applied[setting] = zone_id in self._sim_zones
                continue
            try:
                await self._call("PATCH", f"/zones/{zone_id}/settings/{setting}", json_data={"value": value})
                applied[setting] = True
            except ExternalProviderError as e:
                applied[setting] = False
                if self._logger:
                    self._logger.warn(
                        self.COMPONENT,
                        "TLS setting not applied",
                        {"zone_id": zone_id, "setting": setting, "error": e.message},
                    )
        return applied

    async def ping(self) -> bool:
        if self._simulation_mode:
            return True
        if self._config.uses_token_auth:
            await self._call("GET", "/user/tokens/verify")
        else:
            await self._call("GET", "/user")
        return True

    # ------------------------------------------------------------------
    # Simulation helpers
    # ------------------------------------------------------------------

    def _simulated_zone(self, domain: str) -> ZoneInfo:
        zone_id = uuid.uuid4().hex
        zone = ZoneInfo(
            zone_id=zone_id,
            name=domain,
            status="pending",
            nameservers=["ada.ns.cloudflare.com", "bob.ns.cloudflare.com"],
        )
        self._sim_zones[zone_id] = (zone, [])
        return ZoneInfo(zone.zone_id, zone.name, zone.status, list(zone.nameservers))

    def _sim_records(self, zone_id: str) -> list[ProviderRecord]:
        entry = self._sim_zones.get(zone_id)
        if entry is None:
            raise self._error(ProviderErrorCode.NOT_FOUND, f"Zone {zone_id} not found")
        return entry[1]

    def activate_simulated_zone(self, zone_id: str) -> None:
        """Mark a simulated zone as delegated (simulation mode only)."""
        entry = self._sim_zones.get(zone_id)
        if entry is not None:
            entry[0].status = "active"
