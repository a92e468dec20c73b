"""
Provider interfaces for the domain lifecycle system.

The orchestrator, verification engine and reconciler only ever talk to these
abstract ports. Concrete HTTP and DNS implementations are injected at
construction, which lets tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .enums import RecordType
from .models import (
    DomainAvailability,
    LookupResult,
    ProviderRecord,
    RegistrarPurchase,
    ZoneInfo,
)


class DNSResolver(ABC):
    """Live DNS lookups."""

    @abstractmethod
    async def lookup(self, hostname: str, record_type: RecordType) -> LookupResult:
        """
        Resolve one record type for a hostname.

        A missing name or empty answer is reported as NOT_FOUND. Only real
        resolver failures (timeouts, SERVFAIL) are reported as ERROR.
        """


class Registrar(ABC):
    """Domain registrar (reseller) API."""

    @abstractmethod
    async def check_availability(self, domain_names: list[str]) -> list[DomainAvailability]:
        pass

    @abstractmethod
    async def purchase(
        self,
        domain_name: str,
        years: int,
        contact_info: Optional[dict] = None,
        wholesale_price: Optional[float] = None,
    ) -> RegistrarPurchase:
        pass

    @abstractmethod
    async def set_nameservers(self, domain_name: str, nameservers: list[str]) -> None:
        pass

    async def ping(self) -> bool:
        """Connectivity probe used by the self-test."""
        return True


class DNSProvider(ABC):
    """DNS hosting and edge TLS provider API."""

    @abstractmethod
    async def create_or_get_zone(self, domain: str) -> ZoneInfo:
        pass

    @abstractmethod
    async def find_zone(self, name: str) -> Optional[ZoneInfo]:
        pass

    @abstractmethod
    async def get_zone_status(self, zone_id: str) -> str:
        pass

    @abstractmethod
    async def list_records(
        self,
        zone_id: str,
        record_type: Optional[str] = None,
        name: Optional[str] = None,
    ) -> list[ProviderRecord]:
        pass

    @abstractmethod
    async def add_record(
        self,
        zone_id: str,
        record_type: str,
        name: str,
        content: str,
        proxied: bool = False,
    ) -> ProviderRecord:
        pass

    @abstractmethod
    async def delete_record(self, zone_id: str, record_id: str) -> None:
        pass

    @abstractmethod
    async def enable_strict_tls(self, zone_id: str) -> dict[str, bool]:
        pass

    async def ping(self) -> bool:
        return True


class EdgeRouter(ABC):
    """Edge router that must know every hostname it serves."""

    @abstractmethod
    async def register(self, hostname: str) -> None:
        pass

    @abstractmethod
    async def deregister(self, hostname: str) -> None:
        pass

    async def ping(self) -> bool:
        return True


class AccessPolicy(ABC):
    """
    Answers ownership questions about projects and tenants.

    Projects and tenants live outside this system, so the RPC boundary asks
    an injected policy instead of reading them directly.
    """

    @abstractmethod
    def owns_project(self, user_id: str, project_id: str) -> bool:
        pass

    @abstractmethod
    def can_manage_tenant(self, user_id: str, tenant_id: str) -> bool:
        pass

    @abstractmethod
    def tenant_allows_custom_domains(self, tenant_id: str) -> bool:
        pass

    @abstractmethod
    def set_custom_domain_verified(self, tenant_id: str, verified: bool) -> None:
        """Record on the tenant whether its portal domain is live."""


class StaticAccessPolicy(AccessPolicy):
    """
    In-memory policy backed by plain dictionaries.

    ``projects`` maps project_id -> owner user_id. ``tenant_admins`` maps
    tenant_id -> set of user_ids allowed to manage settings. ``tenant_plans``
    maps tenant_id -> plan name. ``verified_tenants`` collects tenants whose
    portal domain is active.
    """

    WHITE_LABEL_PLANS = frozenset({"agency", "agency_plus", "enterprise"})

    def __init__(
        self,
        projects: Optional[dict[str, str]] = None,
        tenant_admins: Optional[dict[str, set[str]]] = None,
        tenant_plans: Optional[dict[str, str]] = None,
        allow_any_project: bool = False,
    ) -> None:
        self.projects = projects or {}
        self.tenant_admins = tenant_admins or {}
        self.tenant_plans = tenant_plans or {}
        self.allow_any_project = allow_any_project
        self.verified_tenants: set[str] = set()

    def owns_project(self, user_id: str, project_id: str) -> bool:
        if self.allow_any_project:
            return True
        return self.projects.get(project_id) == user_id

    def can_manage_tenant(self, user_id: str, tenant_id: str) -> bool:
        return user_id in self.tenant_admins.get(tenant_id, set())

    def tenant_allows_custom_domains(self, tenant_id: str) -> bool:
        return self.tenant_plans.get(tenant_id) in self.WHITE_LABEL_PLANS

    def set_custom_domain_verified(self, tenant_id: str, verified: bool) -> None:
        if verified:
            self.verified_tenants.add(tenant_id)
        else:
            self.verified_tenants.discard(tenant_id)
