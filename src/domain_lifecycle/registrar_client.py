"""
Registrar client for domain availability, purchase and nameserver updates.

Talks to a Name.com-style reseller REST API with HTTP basic auth. Retail
prices are the wholesale price plus the configured margin, rounded up to
the cent.
"""

import math
from typing import Any, Optional

import httpx

from .audit_logger import AuditLogger
from .config import RegistrarConfig
from .enums import ProviderErrorCode
from .exceptions import ExternalProviderError, ValidationError
from .http_client import ProviderHTTPClient
from .models import DomainAvailability, RegistrarPurchase
from .providers import Registrar


MAX_NAMES_PER_CHECK = 50

# Registrar messages meaning the name already sits in our account
ALREADY_OWNED_MARKERS = ("domain is not available", "domain exists")


def apply_margin(price: Optional[float], margin: float) -> Optional[float]:
    """ceil(price * (1 + margin) * 100) / 100, or None when price is absent."""
    if price is None:
        return None
    return math.ceil(round(price * (1 + margin) * 100, 6)) / 100


class RegistrarClient(ProviderHTTPClient, Registrar):
    """
    Async registrar client.

    In simulation mode every name is purchasable at a fixed price and
    purchases succeed without a network call.
    """

    PROVIDER = "registrar"
    COMPONENT = "RegistrarClient"

    SIMULATED_PRICE = 12.99

    def __init__(
        self,
        config: RegistrarConfig,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url=config.api_url,
            timeout=config.timeout_seconds,
            simulation_mode=simulation_mode,
            logger=logger,
            transport=transport,
        )
        self._config = config

    def _auth(self) -> Optional[httpx.Auth]:
        return httpx.BasicAuth(self._config.username, self._config.token)

    def _error_message(self, payload: Any, status_code: int) -> str:
        if isinstance(payload, dict):
            message = payload.get("message") or ""
            details = payload.get("details") or ""
            if message and details:
                return f"{message}: {details}"
            if message:
                return str(message)
        return f"Registrar API error: {status_code}"

    def _require_credentials(self) -> None:
        if not self._config.username or not self._config.token:
            raise self._error(
                ProviderErrorCode.NOT_CONFIGURED,
                "Registrar API credentials not configured",
            )

    async def check_availability(self, domain_names: list[str]) -> list[DomainAvailability]:
        """
        Check up to 50 names in one call.

        Raises:
            ValidationError: If the list is empty or longer than 50
            ExternalProviderError: On registrar failure
        """
        if not domain_names:
            raise ValidationError(code="missing_domains", message="domains array is required")
        if len(domain_names) > MAX_NAMES_PER_CHECK:
            raise ValidationError(
                code="too_many_domains",
                message=f"Maximum {MAX_NAMES_PER_CHECK} domains per request",
                details={"count": len(domain_names)},
            )

        if self._simulation_mode:
            return [self._simulated_availability(name) for name in domain_names]

        self._require_credentials()
        payload = await self._request(
            "POST",
            "/domains:checkAvailability",
            json_data={"domainNames": list(domain_names)},
        )

        results = payload.get("results", []) if isinstance(payload, dict) else []
        margin = self._config.price_margin
        availability = []
        for item in results:
            if not isinstance(item, dict) or not item.get("domainName"):
                continue
            wholesale = item.get("purchasePrice")
            availability.append(DomainAvailability(
                domain_name=item["domainName"],
                purchasable=bool(item.get("purchasable", False)),
                wholesale_price=wholesale,
                retail_price=apply_margin(wholesale, margin),
                renewal_price=apply_margin(item.get("renewalPrice"), margin),
                premium=bool(item.get("premium", False)),
            ))
        return availability

    async def purchase(
        self,
        domain_name: str,
        years: int,
        contact_info: Optional[dict] = None,
        wholesale_price: Optional[float] = None,
    ) -> RegistrarPurchase:
        """
        Register a domain in the reseller account.

        A "not available"/"exists" answer for a name we already hold is
        reported as ``already_owned`` instead of an error.
        """
        if self._simulation_mode:
            return RegistrarPurchase(domain_name=domain_name, order_ref=f"sim-{domain_name}")

        self._require_credentials()
        body: dict[str, Any] = {"domain": {"domainName": domain_name}, "years": years}
        if wholesale_price is not None:
            body["purchasePrice"] = wholesale_price
        if contact_info:
            body["domain"]["contacts"] = {
                "registrant": contact_info,
                "admin": contact_info,
                "tech": contact_info,
                "billing": contact_info,
            }

        try:
            payload = await self._request("POST", "/domains", json_data=body)
        except ExternalProviderError as e:
            if any(marker in e.message.lower() for marker in ALREADY_OWNED_MARKERS):
                if self._logger:
                    self._logger.info(
                        self.COMPONENT,
                        "Domain already held in registrar account",
                        {"domain": domain_name},
                    )
                return RegistrarPurchase(domain_name=domain_name, order_ref=None, already_owned=True)
            raise

        order_ref = None
        if isinstance(payload, dict) and payload.get("order") is not None:
            order_ref = str(payload["order"])
        return RegistrarPurchase(domain_name=domain_name, order_ref=order_ref, raw_response=payload)

    async def set_nameservers(self, domain_name: str, nameservers: list[str]) -> None:
        if self._simulation_mode:
            return
        self._require_credentials()
        await self._request(
            "POST",
            f"/domains/{domain_name}:setNameservers",
            json_data={"nameservers": list(nameservers)},
        )

    async def ping(self) -> bool:
        """Authenticated hello call."""
        if self._simulation_mode:
            return True
        self._require_credentials()
        await self._request("GET", "/hello")
        return True

    def _simulated_availability(self, name: str) -> DomainAvailability:
        price = self.SIMULATED_PRICE
        return DomainAvailability(
            domain_name=name,
            purchasable=True,
            wholesale_price=price,
            retail_price=apply_margin(price, self._config.price_margin),
            renewal_price=apply_margin(price, self._config.price_margin),
        )
