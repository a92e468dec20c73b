"""
Verification Engine for live DNS state.

Compares what public DNS answers against what a domain should point at and
returns a per-record and overall verdict. Two rules exist side by side:

- Root flow: the domain is verified when the root A record hits one of
  the ingress IPs OR ``www`` is a CNAME to the ingress host. The TXT token
  is checked and reported but does not gate the verdict.
- Portal flow: the domain is verified only when its CNAME points at the
  portal host AND the TXT token matches, because the token is the only
  ownership proof in that flow.

A record that does not exist yet means "not propagated", never a failure.
The engine does not raise.
"""

import asyncio
from typing import Optional

from .audit_logger import AuditLogger
from .config import IngressConfig
from .enums import LookupStatus, RecordType
from .models import LookupResult, RecordCheck, VerificationResult
from .providers import DNSProvider, DNSResolver


def _clean(value: str) -> str:
    return value.strip().strip('"').rstrip(".").lower()


class VerificationEngine:
    """Evaluates live DNS answers for root and portal domains."""

    COMPONENT = "VerificationEngine"

    def __init__(
        self,
        resolver: DNSResolver,
        ingress: IngressConfig,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._resolver = resolver
        self._ingress = ingress
        self._logger = logger

    def txt_host(self, domain: str) -> str:
        return f"{self._ingress.txt_prefix}.{domain}"

    def portal_txt_host(self, domain: str) -> str:
        return f"{self._ingress.portal_txt_prefix}.{domain}"

    async def _lookup(self, hostname: str, record_type: RecordType) -> LookupResult:
        """Resolver call that turns anything unexpected into an ERROR result."""
        try:
            result = await self._resolver.lookup(hostname, record_type)
        except Exception as e:
            result = LookupResult(hostname, record_type, LookupStatus.ERROR, error=f"{type(e).__name__}: {e}")
        if result.status == LookupStatus.ERROR and self._logger:
            self._logger.warn(
                self.COMPONENT,
                "Lookup failed, treating record as unverified",
                {"hostname": hostname, "type": record_type.value, "error": result.error},
            )
        return result

    @staticmethod
    def _check(result: LookupResult, expected: list[str]) -> RecordCheck:
        wanted = {_clean(v) for v in expected}
        found = [_clean(v) for v in result.values] if result.found else []
        return RecordCheck(
            record_type=result.record_type,
            hostname=result.hostname,
            expected=list(expected),
            found=found,
            verified=bool(wanted) and any(v in wanted for v in found),
            error=result.error if result.status == LookupStatus.ERROR else None,
        )

    async def verify_root(
        self,
        domain: str,
        verification_token: Optional[str] = None,
        expected_ips: Optional[list[str]] = None,
        cname_target: Optional[str] = None,
    ) -> VerificationResult:
        """
        Root-domain rule: A OR CNAME.

        Args:
            domain: Normalized domain
            verification_token: Optional TXT token, reported only
            expected_ips: Override of the ingress IP set
            cname_target: Override of the ingress hostname
        """
        ips = expected_ips if expected_ips is not None else self._ingress.a_record_ips
        target = cname_target or self._ingress.cname_target

        lookups = [
            self._lookup(domain, RecordType.A),
            self._lookup(f"www.{domain}", RecordType.CNAME),
        ]
        if verification_token:
            lookups.append(self._lookup(self.txt_host(domain), RecordType.TXT))
        results = await asyncio.gather(*lookups)

        a_check = self._check(results[0], ips)
        cname_check = self._check(results[1], [target])
        txt_check = self._check(results[2], [verification_token]) if verification_token else None

        return VerificationResult(
            domain=domain,
            verified=a_check.verified or cname_check.verified,
            a_check=a_check,
            cname_check=cname_check,
            txt_check=txt_check,
        )

    async def verify_portal(
        self,
        domain: str,
        verification_token: str,
        cname_target: Optional[str] = None,
    ) -> VerificationResult:
        """
        Portal-domain rule: CNAME AND TXT.

        ``errors`` names every record that is missing or points elsewhere,
        and every lookup that failed outright.
        """
        target = cname_target or self._ingress.portal_cname_target
        txt_host = self.portal_txt_host(domain)

        cname_result, txt_result = await asyncio.gather(
            self._lookup(domain, RecordType.CNAME),
            self._lookup(txt_host, RecordType.TXT),
        )
        cname_check = self._check(cname_result, [target])
        txt_check = self._check(txt_result, [verification_token])

        errors = []
        if not cname_check.verified:
            if cname_check.found:
                errors.append(f"CNAME record points to {cname_check.found[0]}, expected {target}")
            elif cname_check.error:
                errors.append(f"Could not look up CNAME record for {domain}")
            else:
                errors.append(f"CNAME record not found for {domain}")
        if not txt_check.verified:
            if txt_check.found:
                errors.append(f"TXT record at {txt_host} does not match the verification token")
            elif txt_check.error:
                errors.append(f"Could not look up TXT record at {txt_host}")
            else:
                errors.append(f"TXT record not found at {txt_host}")

        return VerificationResult(
            domain=domain,
            verified=cname_check.verified and txt_check.verified,
            cname_check=cname_check,
            txt_check=txt_check,
            errors=errors,
        )

    async def check_zone_active(self, provider: DNSProvider, zone_id: str) -> bool:
        """True when the provider reports nameservers delegated to it."""
        try:
            status = await provider.get_zone_status(zone_id)
        except Exception as e:
            if self._logger:
                self._logger.warn(self.COMPONENT, "Zone status check failed", {"zone_id": zone_id, "error": str(e)})
            return False
        return status == "active"
