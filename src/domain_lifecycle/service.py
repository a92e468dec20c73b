"""
RPC boundary of the domain lifecycle system.

Every call is authenticated (except the public availability check),
validates its arguments, checks ownership and then hands off to the
orchestrator, the verification engine or the registry. Responses are
plain dictionaries ready to be serialized.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from .audit_logger import AuditLogger
from .config import IngressConfig
from .domain_validator import DomainValidator, generate_verification_token
from .enums import DomainStatus, OrderStatus, SSLStatus
from .exceptions import (
    AuthenticationError,
    DomainLifecycleError,
    OwnershipError,
    PreconditionError,
    ValidationError,
    rpc_error,
)
from .i18n import get_message
from .models import DomainOrder, DomainRecord, PortalDomainRecord, ProvisioningResult
from .orchestrator import ProvisioningOrchestrator
from .providers import AccessPolicy, Registrar
from .reconciler import Reconciler
from .registry import DomainRegistry
from .state_machine import is_terminal, require_ssl_transition, require_transition
from .verification_engine import VerificationEngine


MIN_YEARS = 1
MAX_YEARS = 10
RECORD_TTL = 3600


@dataclass
class CallerContext:
    """Identity of the authenticated caller; user_id is empty when anonymous."""

    user_id: Optional[str] = None


def _result_dict(result: ProvisioningResult) -> dict:
    return {
        "success": result.success,
        "domain": result.domain,
        "status": result.status,
        "nameservers": list(result.nameservers),
        "zone_id": result.zone_id,
        "degraded": result.degraded,
        "steps": [
            {"step": s.step, "success": s.success, "critical": s.critical, "error": s.error}
            for s in result.steps
        ],
        "error": result.error,
    }


class DomainService:
    """The callable surface offered to clients."""

    COMPONENT = "DomainService"

    # Client-facing RPC names
    RPC_METHODS = {
        "addCustomDomain": "add_custom_domain",
        "setupExternalDomainWithCloudflare": "setup_external_domain",
        "verifyExternalDomainNameservers": "verify_external_domain_nameservers",
        "verifyDomainDNS": "verify_domain_dns",
        "checkDomainSSL": "check_domain_ssl",
        "removeCustomDomain": "remove_custom_domain",
        "updateDomainStatus": "update_domain_status",
        "checkDomainAvailability": "check_domain_availability",
        "purchaseDomain": "purchase_domain",
        "createDomainOrder": "create_domain_order",
        "checkDomainOrderStatus": "check_domain_order_status",
        "syncDomainMapping": "sync_domain_mapping",
        "migrateToCloudflare": "migrate_to_dns_provider",
        "listDomains": "list_domains",
        "addPortalDomain": "add_portal_domain",
        "verifyPortalDomain": "verify_portal_domain",
        "removePortalDomain": "remove_portal_domain",
    }
    PUBLIC_METHODS = frozenset({"check_domain_availability"})

    def __init__(
        self,
        registry: DomainRegistry,
        orchestrator: ProvisioningOrchestrator,
        verification_engine: VerificationEngine,
        reconciler: Reconciler,
        registrar: Registrar,
        access_policy: AccessPolicy,
        ingress: IngressConfig,
        logger: Optional[AuditLogger] = None,
        language: str = "en",
    ) -> None:
        self._registry = registry
        self._orchestrator = orchestrator
        self._engine = verification_engine
        self._reconciler = reconciler
        self._registrar = registrar
        self._policy = access_policy
        self._ingress = ingress
        self._logger = logger
        self._language = language
        self._validator = DomainValidator()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _require_caller(caller: Optional[CallerContext]) -> str:
        if caller is None or not caller.user_id:
            raise AuthenticationError(code="unauthenticated", message="Must be logged in")
        return caller.user_id

    @staticmethod
    def _require_text(value: Any, field_name: str) -> str:
        if not value or not isinstance(value, str) or not value.strip():
            raise ValidationError(code=f"missing_{field_name}", message=f"{field_name} is required")
        return value.strip()

    def _require_project(self, user_id: str, project_id: Any) -> str:
        project_id = self._require_text(project_id, "project_id")
        if not self._policy.owns_project(user_id, project_id):
            raise OwnershipError(
                code="project_not_owned",
                message="You do not own this project",
                details={"project_id": project_id},
            )
        return project_id

    def _owned_domain(self, user_id: str, raw_domain: Any) -> DomainRecord:
        domain = self._validator.require_valid(raw_domain)
        record = self._registry.require(domain)
        if record.owner_id != user_id:
            raise OwnershipError(
                code="domain_not_owned",
                message="You do not own this domain",
                details={"domain": domain},
            )
        return record

    def _require_tenant_admin(self, user_id: str, tenant_id: Any) -> str:
        tenant_id = self._require_text(tenant_id, "tenant_id")
        if not self._policy.can_manage_tenant(user_id, tenant_id):
            raise OwnershipError(
                code="tenant_permission_denied",
                message="You are not allowed to manage domains for this tenant",
                details={"tenant_id": tenant_id},
            )
        return tenant_id

    @staticmethod
    def _require_years(years: Any) -> int:
        if isinstance(years, bool) or not isinstance(years, int) or not MIN_YEARS <= years <= MAX_YEARS:
            raise ValidationError(
                code="invalid_years",
                message=f"years must be between {MIN_YEARS} and {MAX_YEARS}",
                details={"years": years},
            )
        return years

    # ------------------------------------------------------------------
    # Custom domains
    # ------------------------------------------------------------------

    async def add_custom_domain(self, caller: Optional[CallerContext], domain: Any, project_id: Any) -> dict:
        """Claim a domain for one of the caller's projects and list the records to publish."""
        user_id = self._require_caller(caller)
        domain = self._validator.require_valid(domain)
        project_id = self._require_project(user_id, project_id)

        record = self._orchestrator.connect_domain(user_id, domain, project_id)
        return {
            "success": True,
            "domain": record.domain,
            "dns_records": [r.to_dict() for r in record.dns_records],
            "verification_token": record.verification_token,
        }

    async def setup_external_domain(self, caller: Optional[CallerContext], domain: Any, project_id: Any) -> dict:
        """Host DNS for a domain bought elsewhere and return the nameservers to delegate to."""
        user_id = self._require_caller(caller)
        domain = self._validator.require_valid(domain)
        project_id = self._require_project(user_id, project_id)

        result = await self._orchestrator.setup_external_domain(user_id, domain, project_id)
        return {
            "success": True,
            "domain": domain,
            "nameservers": list(result.nameservers),
            "zone_id": result.zone_id,
            "instructions": self._orchestrator.instructions(result.nameservers),
            "degraded": result.degraded,
        }

    async def verify_external_domain_nameservers(self, caller: Optional[CallerContext], domain: Any) -> dict:
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)

        verified, record = await self._orchestrator.verify_nameservers(record.domain)
        if verified:
            return {
                "verified": True,
                "status": record.status.value,
                "message": get_message("nameservers.active", self._language, domain=record.domain),
            }
        return {
            "verified": False,
            "status": record.status.value,
            "nameservers": list(record.provider_nameservers),
            "message": get_message("nameservers.pending", self._language, domain=record.domain),
        }

    async def verify_domain_dns(self, caller: Optional[CallerContext], domain: Any) -> dict:
        """
        Check live DNS now. A verified domain moves one step forward; an
        unverified one keeps its status.
        """
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)

        async with self._registry.lease(record.domain):
            record = self._registry.require(record.domain)
            result = await self._engine.verify_root(record.domain, record.verification_token)
            advanced = await self._orchestrator.apply_root_verification(record, result)
            if not result.verified and not is_terminal(record.status):
                record.verification_attempts += 1
                self._registry.update(record)

        message_key = "dns.verified" if result.verified else "dns.pending"
        return {
            "verified": result.verified,
            "advanced": advanced,
            "records": [check.to_dict() for check in result.checks],
            "checked_at": result.checked_at,
            "message": get_message(message_key, self._language, domain=record.domain),
        }

    async def check_domain_ssl(self, caller: Optional[CallerContext], domain: Any) -> dict:
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)
        return {
            "domain": record.domain,
            "ssl_status": record.ssl_status.value,
            "status": record.status.value,
        }

    async def remove_custom_domain(self, caller: Optional[CallerContext], domain: Any) -> dict:
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)
        await self._orchestrator.remove_domain(record.domain)
        return {
            "success": True,
            "message": get_message("domain.removed", self._language, domain=record.domain),
        }

    async def update_domain_status(
        self,
        caller: Optional[CallerContext],
        domain: Any,
        status: Optional[str] = None,
        ssl_status: Optional[str] = None,
    ) -> dict:
        """
        Move a domain's status or SSL status forward.

        Raises:
            ValidationError: On an unknown value or a backwards move
        """
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)
        try:
            new_status = DomainStatus(status) if status else None
            new_ssl = SSLStatus(ssl_status) if ssl_status else None
        except ValueError as e:
            raise ValidationError(code="invalid_status", message=str(e), details={"domain": record.domain})

        async with self._registry.lease(record.domain):
            record = self._registry.require(record.domain)
            if new_status is not None:
                require_transition(record.status, new_status)
                if new_status != record.status and self._logger:
                    self._logger.log_transition(self.COMPONENT, record.domain, record.status.value, new_status.value)
                record.status = new_status
            if new_ssl is not None:
                require_ssl_transition(record.ssl_status, new_ssl)
                record.ssl_status = new_ssl
            record = self._registry.update(record)
            if self._registry.get_routing(record.domain) is not None:
                self._orchestrator.sync_routing(record)

        return {"success": True, "status": record.status.value, "ssl_status": record.ssl_status.value}

    async def sync_domain_mapping(self, caller: Optional[CallerContext], domain: Any, project_id: Any) -> dict:
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)
        project_id = self._require_project(user_id, project_id)

        row = self._orchestrator.sync_mapping(record.domain, project_id)
        return {
            "success": True,
            "domain": row.domain,
            "project_id": row.project_id,
            "message": get_message("domain.mapping_synced", self._language, domain=row.domain, project_id=project_id),
        }

    async def migrate_to_dns_provider(self, caller: Optional[CallerContext], domain: Any) -> dict:
        user_id = self._require_caller(caller)
        record = self._owned_domain(user_id, domain)

        result = await self._orchestrator.migrate_to_dns_provider(record.domain)
        return {
            "success": True,
            "domain": record.domain,
            "nameservers": list(result.nameservers),
            "zone_id": result.zone_id,
            "instructions": self._orchestrator.instructions(result.nameservers),
        }

    async def list_domains(self, caller: Optional[CallerContext]) -> dict:
        user_id = self._require_caller(caller)
        return {"domains": [r.to_dict() for r in self._registry.list_by_owner(user_id)]}

    # ------------------------------------------------------------------
    # Registrar and orders
    # ------------------------------------------------------------------

    async def check_domain_availability(self, domains: Any) -> dict:
        """Public price and availability lookup for up to 50 names."""
        if not isinstance(domains, list) or not domains:
            raise ValidationError(code="missing_domains", message="domains array is required")
        names = [self._validator.require_valid(d) for d in domains]
        results = await self._registrar.check_availability(names)
        return {"results": [r.to_dict() for r in results]}

    async def _priced_order(self, user_id: str, domain_name: Any, years: Any, contact_info: Any) -> DomainOrder:
        domain = self._validator.require_valid(domain_name)
        years = self._require_years(years)
        if contact_info is not None and not isinstance(contact_info, dict):
            raise ValidationError(code="invalid_contact_info", message="contact_info must be an object")

        quotes = await self._registrar.check_availability([domain])
        quote = next((q for q in quotes if q.domain_name.lower() == domain), None)
        if quote is None or not quote.purchasable:
            raise PreconditionError(
                code="domain_unavailable",
                message="Domain is not available for purchase",
                details={"domain": domain},
            )

        order = DomainOrder(
            id=uuid.uuid4().hex,
            owner_id=user_id,
            domain_name=domain,
            term_years=years,
            wholesale_price=quote.wholesale_price,
            retail_price=quote.retail_price,
            contact_info=contact_info,
        )
        self._registry.create_order(order)
        if self._logger:
            self._logger.info(self.COMPONENT, "Domain order created", {"order_id": order.id, "domain": domain, "owner_id": user_id})
        return order

    def _order_response(self, order: DomainOrder, result: ProvisioningResult) -> dict:
        response = _result_dict(result)
        current = self._registry.require_order(order.id)
        response.update({
            "order_id": order.id,
            "domain_name": order.domain_name,
            "expiry_date": current.expiry_date,
        })
        if result.success:
            response["message"] = get_message("order.completed", self._language, domain=order.domain_name)
        else:
            response["message"] = get_message("order.failed", self._language, domain=order.domain_name, error=result.error)
        return response

    async def purchase_domain(
        self,
        caller: Optional[CallerContext],
        domain_name: Any,
        years: Any = 1,
        contact_info: Optional[dict] = None,
    ) -> dict:
        """Create an order and run the purchase immediately, without a checkout step."""
        user_id = self._require_caller(caller)
        order = await self._priced_order(user_id, domain_name, years, contact_info)
        result = await self._orchestrator.register_domain_after_payment(order.id)
        return self._order_response(order, result)

    async def create_domain_order(
        self,
        caller: Optional[CallerContext],
        domain_name: Any,
        years: Any = 1,
        contact_info: Optional[dict] = None,
    ) -> dict:
        """Quote and record an order that waits for payment."""
        user_id = self._require_caller(caller)
        order = await self._priced_order(user_id, domain_name, years, contact_info)
        return {
            "order_id": order.id,
            "domain_name": order.domain_name,
            "term_years": order.term_years,
            "retail_price": order.retail_price,
            "status": order.status.value,
        }

    async def complete_domain_order(self, order_id: Any) -> dict:
        """
        Payment-completion trigger. Called by the billing side, not by
        users, and safe to deliver more than once.
        """
        order_id = self._require_text(order_id, "order_id")
        order = self._registry.require_order(order_id)
        if order.status == OrderStatus.COMPLETED and self._logger:
            self._logger.info(
                self.COMPONENT,
                get_message("order.already_completed", self._language, order_id=order_id),
            )
        result = await self._orchestrator.register_domain_after_payment(order_id)
        return self._order_response(order, result)

    async def check_domain_order_status(self, caller: Optional[CallerContext], order_id: Any) -> dict:
        user_id = self._require_caller(caller)
        order = self._registry.require_order(self._require_text(order_id, "order_id"))
        if order.owner_id != user_id:
            raise OwnershipError(
                code="order_not_owned",
                message="Not authorized to view this order",
                details={"order_id": order.id},
            )
        return {
            "status": order.status.value,
            "step": order.step,
            "domain_name": order.domain_name,
            "error": order.error,
            "expiry_date": order.expiry_date,
        }

    # ------------------------------------------------------------------
    # Portal domains
    # ------------------------------------------------------------------

    def _portal_records(self, record: PortalDomainRecord) -> dict:
        return {
            "cname": {
                "type": "CNAME",
                "name": record.domain,
                "value": record.cname_expected,
                "ttl": RECORD_TTL,
                "description": get_message("portal.cname", self._language, target=record.cname_expected),
            },
            "txt": {
                "type": "TXT",
                "name": self._engine.portal_txt_host(record.domain),
                "value": record.txt_expected,
                "ttl": RECORD_TTL,
                "description": get_message("portal.txt", self._language, host=self._engine.portal_txt_host(record.domain)),
            },
        }

    def _owned_portal(self, tenant_id: str, raw_domain: Any) -> PortalDomainRecord:
        domain = self._validator.require_valid(raw_domain)
        record = self._registry.require_portal(domain)
        if record.tenant_id != tenant_id:
            raise OwnershipError(
                code="portal_domain_not_owned",
                message="This domain belongs to another tenant",
                details={"domain": domain},
            )
        return record

    async def add_portal_domain(self, caller: Optional[CallerContext], tenant_id: Any, domain: Any) -> dict:
        """
        Attach a white-label domain to a tenant portal.

        Raises:
            OwnershipError: If the caller cannot manage the tenant
            PreconditionError: If the tenant's plan has no custom domains
            ConflictError: If another tenant holds the domain
        """
        user_id = self._require_caller(caller)
        tenant_id = self._require_tenant_admin(user_id, tenant_id)
        if not self._policy.tenant_allows_custom_domains(tenant_id):
            raise PreconditionError(
                code="plan_not_eligible",
                message="The tenant's plan does not include custom portal domains",
                details={"tenant_id": tenant_id},
            )
        domain = self._validator.require_valid(domain)

        record, created = self._registry.create_portal_if_absent(PortalDomainRecord(
            domain=domain,
            tenant_id=tenant_id,
            verification_token=generate_verification_token(),
            cname_expected=self._ingress.portal_cname_target,
        ))
        if created:
            self._policy.set_custom_domain_verified(tenant_id, False)
        if created and self._logger:
            self._logger.info(self.COMPONENT, "Portal domain added", {"tenant_id": tenant_id, "domain": domain, "user_id": user_id})
        return {
            "success": True,
            "domain": record.domain,
            "verification_token": record.verification_token,
            "dns_records": self._portal_records(record),
        }

    async def verify_portal_domain(self, caller: Optional[CallerContext], tenant_id: Any, domain: Any) -> dict:
        user_id = self._require_caller(caller)
        tenant_id = self._require_tenant_admin(user_id, tenant_id)
        record = self._owned_portal(tenant_id, domain)

        result = await self._engine.verify_portal(record.domain, record.verification_token, record.cname_expected)
        self._reconciler.apply_portal_verification(record.domain, result, on_demand=True)
        record = self._registry.require_portal(record.domain)

        message_key = "portal.verified" if result.verified else "portal.pending"
        return {
            "verified": result.verified,
            "status": record.status.value,
            "cname_verified": result.cname_check.verified,
            "txt_verified": result.txt_check.verified,
            "errors": list(result.errors),
            "message": get_message(message_key, self._language, domain=record.domain),
        }

    async def remove_portal_domain(
        self,
        caller: Optional[CallerContext],
        tenant_id: Any,
        domain: Optional[str] = None,
    ) -> dict:
        """Detach a portal domain; without a domain the tenant's only one is removed."""
        user_id = self._require_caller(caller)
        tenant_id = self._require_tenant_admin(user_id, tenant_id)
        if domain:
            record = self._owned_portal(tenant_id, domain)
        else:
            owned = self._registry.list_portal_by_tenant(tenant_id)
            if not owned:
                raise PreconditionError(
                    code="no_portal_domain",
                    message="No custom portal domain configured",
                    details={"tenant_id": tenant_id},
                )
            record = owned[0]

        self._registry.delete_portal(record.domain)
        self._policy.set_custom_domain_verified(tenant_id, False)
        if self._logger:
            self._logger.info(self.COMPONENT, "Portal domain removed", {"tenant_id": tenant_id, "domain": record.domain, "user_id": user_id})
        return {"success": True, "domain": record.domain}

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, rpc_name: str, caller: Optional[CallerContext] = None, **params) -> dict:
        """
        Dispatch a client RPC by its public name.

        Returns ``{"ok": True, "result": ...}`` or ``{"ok": False, "error":
        {kind, code, message, details}}``. Unexpected exceptions are logged
        and reported as ``internal``.
        """
        method_name = self.RPC_METHODS.get(rpc_name)
        if method_name is None:
            error = ValidationError(code="unknown_method", message=f"Unknown method: {rpc_name}")
            return {"ok": False, "error": rpc_error(error)}

        method = getattr(self, method_name)
        try:
            if method_name in self.PUBLIC_METHODS:
                result = await method(**params)
            else:
                result = await method(caller, **params)
        except DomainLifecycleError as e:
            if self._logger:
                self._logger.warn(self.COMPONENT, "RPC rejected", {"method": rpc_name, "kind": e.kind, "code": e.code})
            return {"ok": False, "error": rpc_error(e)}
        except TypeError as e:
            error = ValidationError(code="invalid_arguments", message=str(e))
            return {"ok": False, "error": rpc_error(error)}
        except Exception as e:
            if self._logger:
                self._logger.log_error(self.COMPONENT, "RPC failed", e, additional_data={"method": rpc_name})
            return {"ok": False, "error": rpc_error(e)}
        return {"ok": True, "result": result}
