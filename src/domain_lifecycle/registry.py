"""
Domain Registry: persisted state for custom domains.

Holds four tables (domains, purchase orders, portal domains, routing rows)
plus a per-owner index. Everything is written to one JSON file protected
by an HMAC-SHA256 so a hand-edited or corrupted file is detected on load.

Uniqueness of a domain name is enforced by create_if_absent, which checks
and inserts under one lock; the insert itself is the ownership gate.
Status changes go through update(), which refuses backwards moves.
"""

import copy
import hashlib
import hmac
import json
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .enums import PortalDomainStatus
from .exceptions import (
    ConflictError,
    LeaseUnavailableError,
    NotFoundError,
    PersistenceError,
    StateTransitionError,
    TamperingError,
    ValidationError,
)
from .models import (
    DomainOrder,
    DomainRecord,
    PortalDomainRecord,
    RoutingRecord,
    utc_now,
)
from .state_machine import (
    NON_TERMINAL_STATUSES,
    can_transition_order,
    can_transition_portal,
    require_ssl_transition,
    require_transition,
)


class DomainRegistry:
    """
    Thread-safe registry with optional HMAC-protected file persistence.

    Without a file path the registry lives only in memory, which is what
    tests and simulation runs use.
    """

    VERSION = 1

    def __init__(
        self,
        file_path: Optional[Path] = None,
        hmac_secret: str = "",
    ) -> None:
        """
        Args:
            file_path: Path to the registry file (JSON). None keeps state in memory.
            hmac_secret: Secret key for HMAC computation; required with file_path
        """
        if file_path is not None and not hmac_secret:
            raise PersistenceError(
                code="missing_secret",
                message="An HMAC secret is required for file persistence",
                details={"file_path": str(file_path)},
            )
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._lock = threading.RLock()
        self._domains: dict[str, DomainRecord] = {}
        self._owner_index: dict[str, set[str]] = {}
        self._orders: dict[str, DomainOrder] = {}
        self._portal: dict[str, PortalDomainRecord] = {}
        self._routing: dict[str, RoutingRecord] = {}
        self._leases: set[str] = set()
        self._last_updated = ""

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """
        Load state from file and validate HMAC.

        Returns:
            True if a file was loaded, False if there was nothing to load

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If file cannot be read or parsed
        """
        if self._file_path is None or not self._file_path.exists():
            return False

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse registry file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read registry file: {e}",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        data_for_hmac = {key: raw_data.get(key) for key in self._hmac_fields()}
        computed_hmac = self.compute_hmac(data_for_hmac)

        if not self.validate_hmac(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - registry may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        try:
            domains = {k: DomainRecord.from_dict(v) for k, v in (raw_data.get("domains") or {}).items()}
            orders = {k: DomainOrder.from_dict(v) for k, v in (raw_data.get("orders") or {}).items()}
            portal = {k: PortalDomainRecord.from_dict(v) for k, v in (raw_data.get("portal_domains") or {}).items()}
            routing = {k: RoutingRecord.from_dict(v) for k, v in (raw_data.get("routing") or {}).items()}
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(
                code="schema_error",
                message=f"Registry file has an unexpected shape: {e}",
                details={"file_path": str(self._file_path)},
            )

        with self._lock:
            self._domains = domains
            self._orders = orders
            self._portal = portal
            self._routing = routing
            self._owner_index = {}
            for name, record in domains.items():
                self._owner_index.setdefault(record.owner_id, set()).add(name)
            self._last_updated = raw_data.get("last_updated") or ""
        return True

    def save(self) -> None:
        """
        Write state to file with HMAC protection. No-op without a file path.

        Raises:
            PersistenceError: If file cannot be written
        """
        if self._file_path is None:
            return

        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            data = {
                "version": self.VERSION,
                "domains": {k: v.to_dict() for k, v in self._domains.items()},
                "orders": {k: v.to_dict() for k, v in self._orders.items()},
                "portal_domains": {k: v.to_dict() for k, v in self._portal.items()},
                "routing": {k: v.to_dict() for k, v in self._routing.items()},
                "last_updated": now,
            }
            data["hmac"] = self.compute_hmac(data)

            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                with open(self._file_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
            except OSError as e:
                raise PersistenceError(
                    code="io_error",
                    message=f"Failed to write registry file: {e}",
                    details={"file_path": str(self._file_path)},
                )
            self._last_updated = now

    @staticmethod
    def _hmac_fields() -> tuple:
        return ("version", "domains", "orders", "portal_domains", "routing", "last_updated")

    def compute_hmac(self, data: dict) -> str:
        """HMAC-SHA256 over the canonical JSON of the protected fields."""
        payload = {key: data.get(key) for key in self._hmac_fields()}
        serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._hmac_secret, serialized.encode("utf-8"), hashlib.sha256).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Constant-time comparison."""
        return hmac.compare_digest(stored_hmac, computed_hmac)

    # ------------------------------------------------------------------
    # Custom domains
    #
    # Records are handed out as copies; a caller's change only lands
    # through update(), which compares it with the stored version.
    # ------------------------------------------------------------------

    def create_if_absent(self, record: DomainRecord) -> tuple[DomainRecord, bool]:
        """
        Insert a domain unless one already exists.

        Returns:
            (stored record, created). When the same owner already holds the
            name the stored record comes back unchanged, token included.

        Raises:
            ConflictError: If another owner holds the name
        """
        with self._lock:
            existing = self._domains.get(record.domain)
            if existing is not None:
                if existing.owner_id != record.owner_id:
                    raise ConflictError(
                        code="domain_claimed",
                        message="Domain is already connected to another account",
                        details={"domain": record.domain},
                    )
                return copy.deepcopy(existing), False

            self._domains[record.domain] = copy.deepcopy(record)
            self._owner_index.setdefault(record.owner_id, set()).add(record.domain)
            self.save()
            return copy.deepcopy(record), True

    def get(self, domain: str) -> Optional[DomainRecord]:
        with self._lock:
            record = self._domains.get(domain)
            return copy.deepcopy(record) if record is not None else None

    def require(self, domain: str) -> DomainRecord:
        """
        Raises:
            NotFoundError: If the domain is not registered
        """
        record = self.get(domain)
        if record is None:
            raise NotFoundError(code="domain_not_found", message="Domain not found", details={"domain": domain})
        return record

    def update(self, record: DomainRecord) -> DomainRecord:
        """
        Persist a modified record, refusing backwards status moves.

        Raises:
            NotFoundError: If the domain was deleted meanwhile
            StateTransitionError: On a backwards status or SSL move
            ValidationError: If the verification token or owner changed
        """
        with self._lock:
            stored = self._domains.get(record.domain)
            if stored is None:
                raise NotFoundError(code="domain_not_found", message="Domain not found", details={"domain": record.domain})
            require_transition(stored.status, record.status)
            require_ssl_transition(stored.ssl_status, record.ssl_status)
            if stored.verification_token != record.verification_token:
                raise ValidationError(
                    code="token_immutable",
                    message="Verification token cannot be changed",
                    details={"domain": record.domain},
                )
            if stored.owner_id != record.owner_id:
                raise ValidationError(
                    code="owner_immutable",
                    message="Domain owner cannot be changed",
                    details={"domain": record.domain},
                )
            record.updated_at = utc_now()
            self._domains[record.domain] = copy.deepcopy(record)
            self.save()
            return record

    def delete(self, domain: str) -> Optional[DomainRecord]:
        """Remove a domain along with its routing row. Returns the removed record."""
        with self._lock:
            record = self._domains.pop(domain, None)
            if record is None:
                return None
            owned = self._owner_index.get(record.owner_id)
            if owned is not None:
                owned.discard(domain)
                if not owned:
                    del self._owner_index[record.owner_id]
            self._routing.pop(domain, None)
            self.save()
            return record

    def list_by_owner(self, owner_id: str) -> list[DomainRecord]:
        with self._lock:
            names = sorted(self._owner_index.get(owner_id, set()))
            return [copy.deepcopy(self._domains[name]) for name in names]

    def list_non_terminal(self, limit: Optional[int] = None) -> list[DomainRecord]:
        """Domains still moving through the lifecycle, oldest update first."""
        with self._lock:
            pending = [copy.deepcopy(r) for r in self._domains.values() if r.status in NON_TERMINAL_STATUSES]
        pending.sort(key=lambda r: r.updated_at)
        return pending[:limit] if limit is not None else pending

    def all_domains(self) -> list[DomainRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._domains.values()]

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def create_order(self, order: DomainOrder) -> DomainOrder:
        with self._lock:
            if order.id in self._orders:
                raise ConflictError(code="order_exists", message="Order already exists", details={"order_id": order.id})
            self._orders[order.id] = copy.deepcopy(order)
            self.save()
            return order

    def get_order(self, order_id: str) -> Optional[DomainOrder]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order is not None else None

    def require_order(self, order_id: str) -> DomainOrder:
        order = self.get_order(order_id)
        if order is None:
            raise NotFoundError(code="order_not_found", message="Order not found", details={"order_id": order_id})
        return order

    def update_order(self, order: DomainOrder) -> DomainOrder:
        """
        Raises:
            NotFoundError: If the order does not exist
            StateTransitionError: On a backwards status move
        """
        with self._lock:
            stored = self._orders.get(order.id)
            if stored is None:
                raise NotFoundError(code="order_not_found", message="Order not found", details={"order_id": order.id})
            if not can_transition_order(stored.status, order.status):
                raise StateTransitionError(
                    code="invalid_order_transition",
                    message=f"Cannot move order from {stored.status.value} to {order.status.value}",
                    details={"order_id": order.id},
                )
            order.updated_at = utc_now()
            self._orders[order.id] = copy.deepcopy(order)
            self.save()
            return order

    def list_orders_by_owner(self, owner_id: str) -> list[DomainOrder]:
        with self._lock:
            return [copy.deepcopy(o) for o in self._orders.values() if o.owner_id == owner_id]

    # ------------------------------------------------------------------
    # Portal domains
    # ------------------------------------------------------------------

    def create_portal_if_absent(self, record: PortalDomainRecord) -> tuple[PortalDomainRecord, bool]:
        """
        Raises:
            ConflictError: If another tenant holds the portal domain
        """
        with self._lock:
            existing = self._portal.get(record.domain)
            if existing is not None:
                if existing.tenant_id != record.tenant_id:
                    raise ConflictError(
                        code="portal_domain_claimed",
                        message="Domain is already in use by another tenant",
                        details={"domain": record.domain},
                    )
                return copy.deepcopy(existing), False
            self._portal[record.domain] = copy.deepcopy(record)
            self.save()
            return copy.deepcopy(record), True

    def get_portal(self, domain: str) -> Optional[PortalDomainRecord]:
        with self._lock:
            record = self._portal.get(domain)
            return copy.deepcopy(record) if record is not None else None

    def require_portal(self, domain: str) -> PortalDomainRecord:
        record = self.get_portal(domain)
        if record is None:
            raise NotFoundError(code="portal_domain_not_found", message="Portal domain not found", details={"domain": domain})
        return record

    def update_portal(self, record: PortalDomainRecord) -> PortalDomainRecord:
        """
        Raises:
            NotFoundError: If the portal domain does not exist
            StateTransitionError: On a backwards status move
        """
        with self._lock:
            stored = self._portal.get(record.domain)
            if stored is None:
                raise NotFoundError(code="portal_domain_not_found", message="Portal domain not found", details={"domain": record.domain})
            if not can_transition_portal(stored.status, record.status):
                raise StateTransitionError(
                    code="invalid_portal_transition",
                    message=f"Cannot move portal domain from {stored.status.value} to {record.status.value}",
                    details={"domain": record.domain},
                )
            record.updated_at = utc_now()
            self._portal[record.domain] = copy.deepcopy(record)
            self.save()
            return record

    def delete_portal(self, domain: str) -> Optional[PortalDomainRecord]:
        with self._lock:
            record = self._portal.pop(domain, None)
            if record is not None:
                self.save()
            return record

    def list_portal_pending(self, limit: Optional[int] = None) -> list[PortalDomainRecord]:
        with self._lock:
            pending = [
                copy.deepcopy(r) for r in self._portal.values()
                if r.status in (PortalDomainStatus.PENDING, PortalDomainStatus.VERIFYING)
            ]
        pending.sort(key=lambda r: r.updated_at)
        return pending[:limit] if limit is not None else pending

    def list_portal_by_tenant(self, tenant_id: str) -> list[PortalDomainRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._portal.values() if r.tenant_id == tenant_id]

    # ------------------------------------------------------------------
    # Routing table
    # ------------------------------------------------------------------

    def upsert_routing(self, row: RoutingRecord) -> RoutingRecord:
        with self._lock:
            row.updated_at = utc_now()
            self._routing[row.domain] = copy.deepcopy(row)
            self.save()
            return row

    def get_routing(self, domain: str) -> Optional[RoutingRecord]:
        with self._lock:
            row = self._routing.get(domain)
            return copy.deepcopy(row) if row is not None else None

    # ------------------------------------------------------------------
    # Per-domain leases
    # ------------------------------------------------------------------

    def try_acquire_lease(self, domain: str) -> bool:
        with self._lock:
            if domain in self._leases:
                return False
            self._leases.add(domain)
            return True

    def release_lease(self, domain: str) -> None:
        with self._lock:
            self._leases.discard(domain)

    def is_leased(self, domain: str) -> bool:
        with self._lock:
            return domain in self._leases

    @asynccontextmanager
    async def lease(self, domain: str):
        """
        Hold the per-domain lease for the duration of a workflow.

        Raises:
            LeaseUnavailableError: If another workflow holds it
        """
        if not self.try_acquire_lease(domain):
            raise LeaseUnavailableError(
                code="domain_busy",
                message="Another operation is already running for this domain",
                details={"domain": domain},
            )
        try:
            yield
        finally:
            self.release_lease(domain)
