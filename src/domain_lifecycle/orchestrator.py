"""
Provisioning Orchestrator for the domain lifecycle system.

Drives a domain through the three external systems:
- the registrar (purchase, nameserver handoff)
- the DNS provider (zone, records, strict TLS)
- the edge router (hostname registration)

and records progress in the registry. Registration and zone setup are
critical: a failure stops the workflow and is persisted. TLS settings,
the nameserver push and edge registration are best-effort; their failures
are logged and reported as degraded steps.

Every workflow holds the per-domain lease, so two runs for the same name
never interleave.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .audit_logger import AuditLogger
from .config import IngressConfig
from .domain_validator import generate_verification_token
from .enums import DomainSource, DomainStatus, OrderStatus, RecordType, SSLStatus
from .exceptions import DomainLifecycleError, ExternalProviderError, PreconditionError
from .i18n import get_message, nameserver_instructions
from .models import (
    DnsRecord,
    DomainOrder,
    DomainRecord,
    ProvisioningResult,
    RoutingRecord,
    StepOutcome,
    VerificationResult,
    ZoneInfo,
    utc_now,
)
from .providers import DNSProvider, EdgeRouter, Registrar
from .registry import DomainRegistry
from .retry_manager import RetryManager
from .state_machine import advance_one, can_transition, can_transition_order, can_transition_ssl, is_terminal
from .verification_engine import VerificationEngine


class ProvisioningOrchestrator:
    """
    Runs the provisioning workflows.

    Providers are injected as interfaces so each one can be replaced by a
    fake in tests.
    """

    COMPONENT = "Orchestrator"

    def __init__(
        self,
        registry: DomainRegistry,
        registrar: Registrar,
        dns_provider: DNSProvider,
        edge_router: EdgeRouter,
        verification_engine: VerificationEngine,
        ingress: IngressConfig,
        retry_manager: RetryManager,
        logger: Optional[AuditLogger] = None,
        language: str = "en",
    ) -> None:
        self._registry = registry
        self._registrar = registrar
        self._dns = dns_provider
        self._edge = edge_router
        self._engine = verification_engine
        self._ingress = ingress
        self._retry = retry_manager
        self._logger = logger
        self._language = language

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log(self, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.info(self.COMPONENT, message, data)

    def _warn(self, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.warn(self.COMPONENT, message, data)

    def desired_records(self, domain: str, token: str) -> list[DnsRecord]:
        """Records a user must publish to point a domain at us."""
        records = [
            DnsRecord(
                type=RecordType.A,
                host="@",
                expected_value=ip,
                description=get_message("dns.record_a", self._language),
            )
            for ip in self._ingress.a_record_ips
        ]
        records.append(DnsRecord(
            type=RecordType.CNAME,
            host="www",
            expected_value=self._ingress.cname_target,
            description=get_message("dns.record_cname", self._language, target=self._ingress.cname_target),
        ))
        records.append(DnsRecord(
            type=RecordType.TXT,
            host=self._ingress.txt_prefix,
            expected_value=token,
            description=get_message("dns.record_txt", self._language),
        ))
        return records

    def _set_status(self, record: DomainRecord, status: DomainStatus) -> bool:
        """Move forward when allowed; returns whether the status changed."""
        if record.status == status or not can_transition(record.status, status):
            return False
        if self._logger:
            self._logger.log_transition(self.COMPONENT, record.domain, record.status.value, status.value)
        record.status = status
        return True

    def _set_ssl(self, record: DomainRecord, ssl_status: SSLStatus) -> None:
        if can_transition_ssl(record.ssl_status, ssl_status):
            record.ssl_status = ssl_status

    def _advance_order(self, order: DomainOrder, status: OrderStatus, step: str) -> DomainOrder:
        order.step = step
        if can_transition_order(order.status, status):
            order.status = status
        return self._registry.update_order(order)

    def _fail_domain(self, record: DomainRecord, error: Exception) -> None:
        record.last_error = str(error)
        self._set_status(record, DomainStatus.ERROR)
        self._registry.update(record)
        if self._logger:
            self._logger.log_error(self.COMPONENT, "Provisioning failed", error, additional_data={"domain": record.domain})

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    async def configure_hosted_dns(self, domain: str, token: str) -> ZoneInfo:
        """
        Create or reuse the zone and publish the hosted record set.

        Root A records are removed before the root CNAME is added. Every add
        tolerates an existing identical record, so reruns are safe.

        Raises:
            ExternalProviderError: after retries are exhausted
        """
        zone = await self._retry.run(lambda: self._dns.create_or_get_zone(domain))

        root_a_records = await self._retry.run(
            lambda: self._dns.list_records(zone.zone_id, record_type="A", name=domain)
        )
        for stale in root_a_records:
            await self._retry.run(lambda rid=stale.id: self._dns.delete_record(zone.zone_id, rid))

        target = self._ingress.cname_target
        await self._retry.run(lambda: self._dns.add_record(zone.zone_id, "CNAME", domain, target, proxied=True))
        await self._retry.run(lambda: self._dns.add_record(zone.zone_id, "CNAME", f"www.{domain}", target, proxied=True))
        await self._retry.run(
            lambda: self._dns.add_record(zone.zone_id, "TXT", self._engine.txt_host(domain), token)
        )

        self._log("Hosted DNS configured", {"domain": domain, "zone_id": zone.zone_id, "removed_a_records": len(root_a_records)})
        return zone

    async def _enable_tls(self, zone_id: str) -> StepOutcome:
        try:
            applied = await self._dns.enable_strict_tls(zone_id)
        except DomainLifecycleError as e:
            self._warn("Strict TLS step failed", {"zone_id": zone_id, "error": e.message})
            return StepOutcome("strict_tls", False, False, e.message)
        failed = [name for name, ok in applied.items() if not ok]
        if failed:
            return StepOutcome("strict_tls", False, False, f"Settings not applied: {', '.join(failed)}")
        return StepOutcome("strict_tls", True, False)

    async def _push_nameservers(self, domain: str, nameservers: list[str]) -> StepOutcome:
        try:
            await self._registrar.set_nameservers(domain, nameservers)
        except DomainLifecycleError as e:
            self._warn("Nameserver update failed, user can update manually", {"domain": domain, "error": e.message})
            return StepOutcome("nameservers", False, False, e.message)
        return StepOutcome("nameservers", True, False)

    async def _register_edge(self, record: DomainRecord) -> StepOutcome:
        try:
            await self._edge.register(record.domain)
        except DomainLifecycleError as e:
            self._warn("Edge router registration failed", {"domain": record.domain, "error": e.message})
            return StepOutcome("edge_router", False, False, e.message)
        record.edge_registered = True
        return StepOutcome("edge_router", True, False)

    def sync_routing(self, record: DomainRecord) -> RoutingRecord:
        """Write the row the request router reads for this hostname."""
        row = RoutingRecord(
            domain=record.domain,
            owner_id=record.owner_id,
            project_id=record.project_id,
            target=self._ingress.cname_target,
            status=record.status.value,
        )
        return self._registry.upsert_routing(row)

    async def activate(self, record: DomainRecord) -> tuple[DomainRecord, list[StepOutcome]]:
        """
        Mark a delegated domain active and publish it.

        Used once the zone reports active: TLS is issued by the provider at
        that point, so there is no separate ssl_pending wait.
        """
        self._set_status(record, DomainStatus.ACTIVE)
        self._set_ssl(record, SSLStatus.ACTIVE)
        record.dns_verified = True
        record.last_verified_at = utc_now()
        record.last_error = None
        steps = [await self._register_edge(record)]
        record = self._registry.update(record)
        self.sync_routing(record)
        return record, steps

    async def apply_root_verification(self, record: DomainRecord, result: VerificationResult) -> bool:
        """
        Copy per-record verdicts onto the record and, when verified, move it
        exactly one step forward. The caller holds the lease.

        An unverified record is returned to the caller unsaved so it can
        count the miss first.

        Returns:
            True when the status advanced
        """
        checks = {RecordType.A: result.a_check, RecordType.CNAME: result.cname_check, RecordType.TXT: result.txt_check}
        for entry in record.dns_records:
            check = checks.get(entry.type)
            if check is not None:
                entry.verified = entry.expected_value.lower() in check.found
                entry.last_checked = result.checked_at

        if not result.verified:
            return False
        record.dns_verified = True
        record.last_verified_at = result.checked_at
        if is_terminal(record.status):
            self._registry.update(record)
            return False

        # Without a hosted zone, pending_nameservers is checked like pending
        target = advance_one(record.status) or DomainStatus.SSL_PENDING
        self._set_status(record, target)
        if target == DomainStatus.SSL_PENDING:
            self._set_ssl(record, SSLStatus.PROVISIONING)
            self._registry.update(record)
        else:
            await self.activate(record)
        return True

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def connect_domain(self, owner_id: str, domain: str, project_id: Optional[str]) -> DomainRecord:
        """
        Claim a domain for an owner, or return the owner's existing claim.

        The verification token is generated only for a new record.

        Raises:
            ConflictError: If another owner holds the domain
        """
        token = generate_verification_token()
        candidate = DomainRecord(
            domain=domain,
            owner_id=owner_id,
            project_id=project_id,
            verification_token=token,
            dns_records=self.desired_records(domain, token),
        )
        record, created = self._registry.create_if_absent(candidate)
        if created:
            self._log("Domain claimed", {"domain": domain, "owner_id": owner_id, "project_id": project_id})
        elif project_id and record.project_id != project_id:
            record.project_id = project_id
            record = self._registry.update(record)
        return record

    async def setup_external_domain(
        self,
        owner_id: str,
        domain: str,
        project_id: Optional[str],
    ) -> ProvisioningResult:
        """
        Host DNS for a domain registered elsewhere.

        Creates the zone and record set, then waits in pending_nameservers
        for the user to delegate to the returned nameservers.

        Raises:
            ConflictError: If another owner holds the domain
            LeaseUnavailableError: If another workflow runs for this domain
            ExternalProviderError: If zone setup fails; the record goes to error
        """
        async with self._registry.lease(domain):
            record = self.connect_domain(owner_id, domain, project_id)
            return await self._host_dns(record)

    async def migrate_to_dns_provider(self, domain: str) -> ProvisioningResult:
        """
        Move an already-connected domain onto hosted DNS.

        Raises:
            NotFoundError: If the domain is not connected
            PreconditionError: If the domain is already active or failed
        """
        async with self._registry.lease(domain):
            record = self._registry.require(domain)
            if record.status in (DomainStatus.ACTIVE, DomainStatus.ERROR):
                raise PreconditionError(
                    code="domain_not_migratable",
                    message=f"Domain is {record.status.value} and cannot be migrated",
                    details={"domain": domain, "status": record.status.value},
                )
            return await self._host_dns(record)

    async def _host_dns(self, record: DomainRecord) -> ProvisioningResult:
        domain = record.domain
        try:
            zone = await self.configure_hosted_dns(domain, record.verification_token)
        except ExternalProviderError as e:
            self._fail_domain(record, e)
            raise

        steps = [StepOutcome("dns_zone", True, True), await self._enable_tls(zone.zone_id)]

        record.provider_zone_id = zone.zone_id
        record.provider_nameservers = list(zone.nameservers)
        self._set_status(record, DomainStatus.PENDING_NAMESERVERS)
        self._set_ssl(record, SSLStatus.PROVISIONING)
        record = self._registry.update(record)

        return ProvisioningResult(
            domain=domain,
            success=True,
            status=record.status.value,
            nameservers=list(zone.nameservers),
            zone_id=zone.zone_id,
            steps=steps,
        )

    def instructions(self, nameservers: list[str]) -> dict[str, str]:
        return nameserver_instructions(nameservers, self._language)

    async def verify_nameservers(self, domain: str) -> tuple[bool, DomainRecord]:
        """
        Activate the domain once its zone reports delegation.

        Raises:
            NotFoundError: If the domain is not connected
            PreconditionError: If the domain has no hosted zone
            LeaseUnavailableError: If another workflow runs for this domain
        """
        async with self._registry.lease(domain):
            record = self._registry.require(domain)
            if not record.provider_zone_id:
                raise PreconditionError(
                    code="no_zone",
                    message="Domain has no DNS zone; set up hosted DNS first",
                    details={"domain": domain},
                )
            if record.status == DomainStatus.ACTIVE:
                return True, record

            if not await self._engine.check_zone_active(self._dns, record.provider_zone_id):
                return False, record

            record, _ = await self.activate(record)
            return True, record

    async def register_domain_after_payment(self, order_id: str) -> ProvisioningResult:
        """
        Purchase, host and publish a paid-for domain.

        Safe to call repeatedly: a completed order returns success without
        touching any provider. A failed critical step leaves the order
        failed and creates no DomainRecord.

        Raises:
            NotFoundError: If the order does not exist
            LeaseUnavailableError: If another workflow runs for this domain
        """
        order = self._registry.require_order(order_id)
        domain = order.domain_name

        if order.status == OrderStatus.COMPLETED:
            self._log("Order already completed, skipping", {"order_id": order_id})
            return ProvisioningResult(
                domain=domain,
                success=True,
                status=OrderStatus.COMPLETED.value,
                nameservers=list(order.nameservers),
                zone_id=order.zone_id,
            )
        if order.status == OrderStatus.FAILED:
            return ProvisioningResult(domain=domain, success=False, status=OrderStatus.FAILED.value, error=order.error)

        async with self._registry.lease(domain):
            return await self._run_purchase(order)

    async def _run_purchase(self, order: DomainOrder) -> ProvisioningResult:
        domain = order.domain_name
        steps: list[StepOutcome] = []
        claimed = False

        try:
            # Step 1: registrar purchase
            order = self._advance_order(order, OrderStatus.REGISTERING, "registrar_registration")
            purchase = await self._retry.run(
                lambda: self._registrar.purchase(
                    domain, order.term_years, order.contact_info, wholesale_price=order.wholesale_price
                )
            )
            if purchase.order_ref:
                order.registrar_order_ref = purchase.order_ref
            steps.append(StepOutcome("registrar_registration", True, True))

            # Step 2: zone and records
            order = self._advance_order(order, OrderStatus.CONFIGURING_DNS, "dns_zone")
            # The claim is the uniqueness gate; it is dropped again if a critical step fails
            record, claimed = self._registry.create_if_absent(
                DomainRecord(
                    domain=domain,
                    owner_id=order.owner_id,
                    project_id=None,
                    verification_token=generate_verification_token(),
                    source=DomainSource.PURCHASED,
                    order_id=order.id,
                )
            )
            token = record.verification_token
            zone = await self.configure_hosted_dns(domain, token)
            order.zone_id = zone.zone_id
            order.nameservers = list(zone.nameservers)
            steps.append(StepOutcome("dns_zone", True, True))
        except DomainLifecycleError as e:
            if claimed:
                self._registry.delete(domain)
            order.status = OrderStatus.FAILED
            order.error = e.message
            self._registry.update_order(order)
            if self._logger:
                self._logger.log_error(
                    self.COMPONENT, "Domain purchase failed", e,
                    additional_data={"order_id": order.id, "domain": domain, "step": order.step},
                )
            return ProvisioningResult(
                domain=domain,
                success=False,
                status=OrderStatus.FAILED.value,
                steps=steps,
                error=e.message,
            )

        # Step 3: strict TLS
        steps.append(await self._enable_tls(zone.zone_id))

        # Step 4: nameserver handoff
        if zone.nameservers:
            order = self._advance_order(order, OrderStatus.UPDATING_NAMESERVERS, "nameserver_update")
            steps.append(await self._push_nameservers(domain, zone.nameservers))

        # Step 5: publish
        record = self._publish_purchased(order, zone)
        steps.append(await self._register_edge(record))
        record = self._registry.update(record)
        self.sync_routing(record)

        now = datetime.now(timezone.utc)
        order.expiry_date = (now + timedelta(days=365 * order.term_years)).isoformat()
        order.completed_at = now.isoformat()
        order.error = None
        self._advance_order(order, OrderStatus.COMPLETED, "completed")

        self._log("Domain purchase completed", {"order_id": order.id, "domain": domain})
        return ProvisioningResult(
            domain=domain,
            success=True,
            status=OrderStatus.COMPLETED.value,
            nameservers=list(zone.nameservers),
            zone_id=zone.zone_id,
            steps=steps,
        )

    def _publish_purchased(self, order: DomainOrder, zone: ZoneInfo) -> DomainRecord:
        record = self._registry.require(order.domain_name)
        if not record.dns_records:
            record.dns_records = self.desired_records(record.domain, record.verification_token)
        record.provider_zone_id = zone.zone_id
        record.provider_nameservers = list(zone.nameservers)
        record.order_id = order.id
        record.dns_verified = True
        record.last_verified_at = utc_now()
        self._set_status(record, DomainStatus.ACTIVE)
        self._set_ssl(record, SSLStatus.ACTIVE)
        return record

    async def remove_domain(self, domain: str) -> Optional[DomainRecord]:
        """
        Disconnect a domain: drop the record and its routing row, then
        deregister the hostname from the edge router (best-effort).
        """
        async with self._registry.lease(domain):
            record = self._registry.delete(domain)
            if record is None:
                return None
            try:
                await self._edge.deregister(domain)
            except DomainLifecycleError as e:
                self._warn("Edge router deregistration failed", {"domain": domain, "error": e.message})
            self._log("Domain removed", {"domain": domain, "owner_id": record.owner_id})
            return record

    def sync_mapping(self, domain: str, project_id: str) -> RoutingRecord:
        """Point a connected domain at a project and rewrite its routing row."""
        record = self._registry.require(domain)
        record.project_id = project_id
        record = self._registry.update(record)
        return self.sync_routing(record)
