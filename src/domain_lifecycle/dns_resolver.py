"""
Live DNS lookups for the verification engine.

Wraps dnspython's async resolver. A name that does not exist or has no
record of the requested type is an ordinary answer (NOT_FOUND), never an
error. Timeouts and server failures come back as ERROR so callers can log
them without raising.
"""

from typing import Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from .audit_logger import AuditLogger
from .enums import LookupStatus, RecordType
from .models import LookupResult
from .providers import DNSResolver


def _rdata_value(record_type: RecordType, rdata) -> str:
    if record_type == RecordType.A:
        return rdata.address
    if record_type == RecordType.CNAME:
        return str(rdata.target).rstrip(".").lower()
    # TXT data arrives as a tuple of byte chunks
    return b"".join(rdata.strings).decode("utf-8", errors="replace")


class DnspythonResolver(DNSResolver):
    """
    DNS resolver backed by dnspython.

    Each lookup carries its own lifetime so one slow nameserver cannot stall
    a whole reconciliation batch.
    """

    COMPONENT = "DNSResolver"

    def __init__(
        self,
        timeout: float = 5.0,
        nameservers: Optional[list[str]] = None,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._timeout = timeout
        self._simulation_mode = simulation_mode
        self._logger = logger
        self._resolver: Optional[dns.asyncresolver.Resolver] = None
        self._nameservers = nameservers

    def _get_resolver(self) -> dns.asyncresolver.Resolver:
        if self._resolver is None:
            resolver = dns.asyncresolver.Resolver()
            resolver.timeout = self._timeout
            resolver.lifetime = self._timeout
            if self._nameservers:
                resolver.nameservers = list(self._nameservers)
            self._resolver = resolver
        return self._resolver

    async def lookup(self, hostname: str, record_type: RecordType) -> LookupResult:
        if self._simulation_mode:
            return LookupResult(hostname, record_type, LookupStatus.NOT_FOUND)

        try:
            answer = await self._get_resolver().resolve(hostname, record_type.value)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return LookupResult(hostname, record_type, LookupStatus.NOT_FOUND)
        except dns.exception.Timeout:
            return self._failed(hostname, record_type, f"DNS lookup timed out after {self._timeout}s")
        except dns.resolver.NoNameservers as e:
            return self._failed(hostname, record_type, f"No nameserver answered: {e}")
        except dns.exception.DNSException as e:
            return self._failed(hostname, record_type, f"DNS lookup failed: {e}")

        values = [_rdata_value(record_type, rdata) for rdata in answer]
        return LookupResult(hostname, record_type, LookupStatus.FOUND, values=values)

    def _failed(self, hostname: str, record_type: RecordType, message: str) -> LookupResult:
        if self._logger:
            self._logger.warn(
                self.COMPONENT,
                "DNS lookup failed",
                {"hostname": hostname, "type": record_type.value, "error": message},
            )
        return LookupResult(hostname, record_type, LookupStatus.ERROR, error=message)
