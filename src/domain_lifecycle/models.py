"""
Data models for the domain lifecycle system.

This module defines the persisted records (custom domains, purchase orders,
portal domains, routing rows) together with the transient results produced
by the provider clients, the verification engine and the orchestrator.

Timestamps are ISO-8601 strings in UTC, as everywhere else in the package.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import (
    DomainSource,
    DomainStatus,
    LookupStatus,
    OrderStatus,
    PortalDomainStatus,
    RecordType,
    SSLStatus,
)


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class DnsRecord:
    """One entry of the desired DNS state for a domain."""

    type: RecordType
    host: str  # '@' for the root, otherwise the relative label
    expected_value: str
    verified: bool = False
    last_checked: Optional[str] = None
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "host": self.host,
            "expected_value": self.expected_value,
            "verified": self.verified,
            "last_checked": self.last_checked,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DnsRecord":
        return cls(
            type=RecordType(data["type"]),
            host=data["host"],
            expected_value=data["expected_value"],
            verified=data.get("verified", False),
            last_checked=data.get("last_checked"),
            description=data.get("description", ""),
        )


@dataclass
class DomainRecord:
    """A custom domain connected to a tenant's project."""

    domain: str
    owner_id: str
    project_id: Optional[str]
    verification_token: str
    status: DomainStatus = DomainStatus.PENDING
    ssl_status: SSLStatus = SSLStatus.PENDING
    dns_verified: bool = False
    dns_records: list[DnsRecord] = field(default_factory=list)
    provider_zone_id: Optional[str] = None
    provider_nameservers: list[str] = field(default_factory=list)
    verification_attempts: int = 0
    source: DomainSource = DomainSource.EXTERNAL
    order_id: Optional[str] = None
    edge_registered: bool = False
    last_error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    last_verified_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["ssl_status"] = self.ssl_status.value
        data["source"] = self.source.value
        data["dns_records"] = [record.to_dict() for record in self.dns_records]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DomainRecord":
        return cls(
            domain=data["domain"],
            owner_id=data["owner_id"],
            project_id=data.get("project_id"),
            verification_token=data["verification_token"],
            status=DomainStatus(data.get("status", DomainStatus.PENDING.value)),
            ssl_status=SSLStatus(data.get("ssl_status", SSLStatus.PENDING.value)),
            dns_verified=data.get("dns_verified", False),
            dns_records=[DnsRecord.from_dict(r) for r in data.get("dns_records", [])],
            provider_zone_id=data.get("provider_zone_id"),
            provider_nameservers=list(data.get("provider_nameservers", [])),
            verification_attempts=data.get("verification_attempts", 0),
            source=DomainSource(data.get("source", DomainSource.EXTERNAL.value)),
            order_id=data.get("order_id"),
            edge_registered=data.get("edge_registered", False),
            last_error=data.get("last_error"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            last_verified_at=data.get("last_verified_at"),
        )


@dataclass
class DomainOrder:
    """A registrar purchase tracked from payment to completion."""

    id: str
    owner_id: str
    domain_name: str
    term_years: int
    wholesale_price: Optional[float]
    retail_price: Optional[float]
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    step: Optional[str] = None
    error: Optional[str] = None
    contact_info: Optional[dict] = None
    registrar_order_ref: Optional[str] = None
    zone_id: Optional[str] = None
    nameservers: list[str] = field(default_factory=list)
    expiry_date: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    completed_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DomainOrder":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            domain_name=data["domain_name"],
            term_years=data.get("term_years", 1),
            wholesale_price=data.get("wholesale_price"),
            retail_price=data.get("retail_price"),
            status=OrderStatus(data.get("status", OrderStatus.PENDING_PAYMENT.value)),
            step=data.get("step"),
            error=data.get("error"),
            contact_info=data.get("contact_info"),
            registrar_order_ref=data.get("registrar_order_ref"),
            zone_id=data.get("zone_id"),
            nameservers=list(data.get("nameservers", [])),
            expiry_date=data.get("expiry_date"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            completed_at=data.get("completed_at"),
        )


@dataclass
class PortalDomainRecord:
    """A white-label portal domain proven by CNAME plus TXT token."""

    domain: str
    tenant_id: str
    verification_token: str
    cname_expected: str
    status: PortalDomainStatus = PortalDomainStatus.PENDING
    ssl_status: SSLStatus = SSLStatus.PENDING
    cname_verified: bool = False
    txt_verified: bool = False
    verification_attempts: int = 0
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    last_verified_at: Optional[str] = None

    @property
    def txt_expected(self) -> str:
        """The TXT value that proves ownership; always the token."""
        return self.verification_token

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["ssl_status"] = self.ssl_status.value
        data["txt_expected"] = self.txt_expected
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PortalDomainRecord":
        return cls(
            domain=data["domain"],
            tenant_id=data["tenant_id"],
            verification_token=data["verification_token"],
            cname_expected=data["cname_expected"],
            status=PortalDomainStatus(data.get("status", PortalDomainStatus.PENDING.value)),
            ssl_status=SSLStatus(data.get("ssl_status", SSLStatus.PENDING.value)),
            cname_verified=data.get("cname_verified", False),
            txt_verified=data.get("txt_verified", False),
            verification_attempts=data.get("verification_attempts", 0),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            last_verified_at=data.get("last_verified_at"),
        )


@dataclass
class RoutingRecord:
    """The row the request router reads to map a hostname to a project."""

    domain: str
    owner_id: str
    project_id: Optional[str]
    target: str
    status: str
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RoutingRecord":
        return cls(
            domain=data["domain"],
            owner_id=data["owner_id"],
            project_id=data.get("project_id"),
            target=data["target"],
            status=data["status"],
            updated_at=data.get("updated_at", ""),
        )


# ============================================================================
# Provider results
# ============================================================================


@dataclass
class LookupResult:
    """Result of one live DNS lookup."""

    hostname: str
    record_type: RecordType
    status: LookupStatus
    values: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


@dataclass
class DomainAvailability:
    """Registrar availability answer for a single name."""

    domain_name: str
    purchasable: bool
    wholesale_price: Optional[float] = None
    retail_price: Optional[float] = None
    renewal_price: Optional[float] = None
    premium: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RegistrarPurchase:
    """Result of a registrar purchase call."""

    domain_name: str
    order_ref: Optional[str]
    already_owned: bool = False
    raw_response: Optional[Any] = None


@dataclass
class ZoneInfo:
    """A DNS provider zone."""

    zone_id: str
    name: str
    status: str
    nameservers: list[str] = field(default_factory=list)
    already_existed: bool = False


@dataclass
class ProviderRecord:
    """A record as stored at the DNS provider."""

    id: str
    type: str
    name: str
    content: str
    proxied: bool = False


# ============================================================================
# Engine results
# ============================================================================


@dataclass
class RecordCheck:
    """Verdict for one record type."""

    record_type: RecordType
    hostname: str
    expected: list[str]
    found: list[str]
    verified: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.record_type.value,
            "hostname": self.hostname,
            "expected": self.expected,
            "found": self.found,
            "verified": self.verified,
            "error": self.error,
        }


@dataclass
class VerificationResult:
    """Overall verdict of the verification engine for one domain."""

    domain: str
    verified: bool
    a_check: Optional[RecordCheck] = None
    cname_check: Optional[RecordCheck] = None
    txt_check: Optional[RecordCheck] = None
    errors: list[str] = field(default_factory=list)
    checked_at: str = field(default_factory=utc_now)

    @property
    def checks(self) -> list[RecordCheck]:
        return [c for c in (self.a_check, self.cname_check, self.txt_check) if c is not None]


@dataclass
class StepOutcome:
    """What happened in one provisioning step."""

    step: str
    success: bool
    critical: bool
    error: Optional[str] = None


@dataclass
class ProvisioningResult:
    """Result of a provisioning workflow run."""

    domain: str
    success: bool
    status: str
    nameservers: list[str] = field(default_factory=list)
    zone_id: Optional[str] = None
    steps: list[StepOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        """True when a non-critical step failed but the workflow completed."""
        return self.success and any(not s.success for s in self.steps)


@dataclass
class ReconciliationReport:
    """Counters from one reconciliation pass."""

    flow: str
    total: int = 0
    advanced: int = 0
    unverified: int = 0
    failed: int = 0
    skipped: int = 0
    errored_out: int = 0
    started_at: str = field(default_factory=utc_now)
    finished_at: Optional[str] = None
    failures: dict[str, str] = field(default_factory=dict)
