"""
Reconciler: the periodic pass that advances domains stalled on DNS.

Each pass loads a bounded batch of non-terminal records and checks every
one of them independently. A domain that errors or hangs is counted and
logged; it never stops the rest of the batch. A domain whose lease is held
by a running workflow is skipped until the next pass.
"""

import asyncio
from typing import Optional

from .audit_logger import AuditLogger
from .config import ReconciliationConfig
from .enums import DomainStatus, PortalDomainStatus, SSLStatus
from .exceptions import LeaseUnavailableError
from .models import DomainRecord, PortalDomainRecord, ReconciliationReport, VerificationResult, utc_now
from .orchestrator import ProvisioningOrchestrator
from .providers import AccessPolicy, DNSProvider
from .registry import DomainRegistry
from .verification_engine import VerificationEngine


# Per-domain outcomes
ADVANCED = "advanced"
UNVERIFIED = "unverified"
SKIPPED = "skipped"
ERRORED_OUT = "errored_out"


class Reconciler:
    """Runs the root-domain and portal-domain reconciliation passes."""

    COMPONENT = "Reconciler"

    def __init__(
        self,
        registry: DomainRegistry,
        verification_engine: VerificationEngine,
        dns_provider: DNSProvider,
        orchestrator: ProvisioningOrchestrator,
        config: ReconciliationConfig,
        logger: Optional[AuditLogger] = None,
        access_policy: Optional[AccessPolicy] = None,
    ) -> None:
        self._registry = registry
        self._engine = verification_engine
        self._dns = dns_provider
        self._orchestrator = orchestrator
        self._config = config
        self._logger = logger
        self._access_policy = access_policy

    def _attempts_exhausted(self, attempts: int) -> bool:
        cap = self._config.max_verification_attempts
        return cap is not None and attempts >= cap

    async def _settle(self, report: ReconciliationReport, items: list, worker) -> ReconciliationReport:
        """Run worker over every item with a per-item timeout and tally the outcomes."""
        timeout = self._config.per_domain_timeout_seconds
        report.total = len(items)
        outcomes = await asyncio.gather(
            *(asyncio.wait_for(worker(item), timeout=timeout) for item in items),
            return_exceptions=True,
        )

        for item, outcome in zip(items, outcomes):
            if isinstance(outcome, BaseException):
                report.failed += 1
                if isinstance(outcome, asyncio.TimeoutError):
                    message = f"Timed out after {timeout}s"
                else:
                    message = f"{type(outcome).__name__}: {outcome}"
                report.failures[item.domain] = message
                if self._logger:
                    self._logger.log_error(
                        self.COMPONENT,
                        "Reconciliation failed for domain",
                        outcome if isinstance(outcome, Exception) else None,
                        additional_data={"domain": item.domain, "flow": report.flow, "reason": message},
                    )
            elif outcome == ADVANCED:
                report.advanced += 1
            elif outcome == UNVERIFIED:
                report.unverified += 1
            elif outcome == SKIPPED:
                report.skipped += 1
            elif outcome == ERRORED_OUT:
                report.errored_out += 1

        report.finished_at = utc_now()
        if self._logger:
            self._logger.info(
                self.COMPONENT,
                "Reconciliation pass finished",
                {
                    "flow": report.flow,
                    "total": report.total,
                    "advanced": report.advanced,
                    "unverified": report.unverified,
                    "failed": report.failed,
                    "skipped": report.skipped,
                    "errored_out": report.errored_out,
                },
            )
        return report

    # ------------------------------------------------------------------
    # Root domains
    # ------------------------------------------------------------------

    async def run_root_pass(self) -> ReconciliationReport:
        """Re-check every non-terminal custom domain in one bounded batch."""
        batch = self._registry.list_non_terminal(limit=self._config.batch_size)
        return await self._settle(ReconciliationReport(flow="root"), batch, self._reconcile_domain)

    async def _reconcile_domain(self, snapshot: DomainRecord) -> str:
        try:
            async with self._registry.lease(snapshot.domain):
                record = self._registry.get(snapshot.domain)
                if record is None or record.status not in (
                    DomainStatus.PENDING,
                    DomainStatus.PENDING_NAMESERVERS,
                    DomainStatus.VERIFYING,
                    DomainStatus.SSL_PENDING,
                ):
                    return SKIPPED
                if record.status == DomainStatus.PENDING_NAMESERVERS and record.provider_zone_id:
                    return await self._reconcile_delegation(record)
                return await self._reconcile_records(record)
        except LeaseUnavailableError:
            return SKIPPED

    async def _reconcile_delegation(self, record: DomainRecord) -> str:
        if await self._engine.check_zone_active(self._dns, record.provider_zone_id):
            await self._orchestrator.activate(record)
            return ADVANCED
        return self._count_miss(record)

    async def _reconcile_records(self, record: DomainRecord) -> str:
        result = await self._engine.verify_root(record.domain, record.verification_token)
        if await self._orchestrator.apply_root_verification(record, result):
            return ADVANCED
        return self._count_miss(record)

    def _count_miss(self, record: DomainRecord) -> str:
        record.verification_attempts += 1
        if self._attempts_exhausted(record.verification_attempts):
            if self._logger:
                self._logger.log_transition(
                    self.COMPONENT, record.domain, record.status.value, DomainStatus.ERROR.value,
                    {"verification_attempts": record.verification_attempts},
                )
            record.status = DomainStatus.ERROR
            record.last_error = "Verification attempts exhausted"
            self._registry.update(record)
            return ERRORED_OUT
        self._registry.update(record)
        return UNVERIFIED

    # ------------------------------------------------------------------
    # Portal domains
    # ------------------------------------------------------------------

    async def run_portal_pass(self) -> ReconciliationReport:
        """Re-check every pending or verifying portal domain."""
        batch = self._registry.list_portal_pending(limit=self._config.batch_size)
        return await self._settle(ReconciliationReport(flow="portal"), batch, self.reconcile_portal_domain)

    async def reconcile_portal_domain(self, record: PortalDomainRecord) -> str:
        result = await self._engine.verify_portal(record.domain, record.verification_token, record.cname_expected)
        return self.apply_portal_verification(record.domain, result)

    def apply_portal_verification(self, domain: str, result: VerificationResult, on_demand: bool = False) -> str:
        """
        Store a portal verdict: CNAME AND TXT activate the domain, anything
        else counts as one more attempt.

        A scheduled miss leaves the status alone and may hit the attempt cap.
        An on-demand miss marks the domain verifying and never errors it out.
        """
        current = self._registry.get_portal(domain)
        if current is None or current.status not in (PortalDomainStatus.PENDING, PortalDomainStatus.VERIFYING):
            return SKIPPED
        previous = current.status
        current.cname_verified = result.cname_check.verified
        current.txt_verified = result.txt_check.verified
        current.last_verified_at = result.checked_at

        if result.verified:
            current.status = PortalDomainStatus.ACTIVE
            current.ssl_status = SSLStatus.ACTIVE
            outcome = ADVANCED
        else:
            current.verification_attempts += 1
            outcome = UNVERIFIED
            if on_demand:
                current.status = PortalDomainStatus.VERIFYING
            elif self._attempts_exhausted(current.verification_attempts):
                current.status = PortalDomainStatus.ERROR
                outcome = ERRORED_OUT

        self._registry.update_portal(current)
        if self._logger and current.status != previous:
            self._logger.log_transition(self.COMPONENT, domain, previous.value, current.status.value)
        if outcome == ADVANCED and self._access_policy is not None:
            self._access_policy.set_custom_domain_verified(current.tenant_id, True)
        return outcome
