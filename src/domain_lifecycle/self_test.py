"""
Startup self-test for the domain lifecycle system.

Validates the loaded configuration (credentials, ingress targets, cron
expressions, API URLs) and then probes each external provider once, so a
misconfigured deployment fails before it starts reconciling.
"""

import asyncio
import ipaddress
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from .audit_logger import AuditLogger
from .config import SystemConfig
from .exceptions import DomainLifecycleError
from .i18n import SUPPORTED_LANGUAGES, get_message
from .providers import DNSProvider, EdgeRouter, Registrar
from .scheduler import CronParseError, CronParser


DEFAULT_HMAC_SECRET = "default-secret-change-me"


@dataclass
class ProviderProbeResult:
    """Result of probing one external provider."""

    provider: str
    success: bool
    response_time_ms: float
    error: Optional[str] = None


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class SelfTestResult:
    """Complete self-test result."""

    success: bool
    config_validation: ConfigValidationResult
    probe_results: list[ProviderProbeResult] = field(default_factory=list)
    total_duration_ms: float = 0.0

    @property
    def failed_probes(self) -> list[ProviderProbeResult]:
        return [r for r in self.probe_results if not r.success]


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000


class SelfTest:
    """
    Startup self-test.

    Performs:
    1. Configuration validation
    2. One connectivity probe per provider (skipped when validation fails)
    """

    PROBE_TIMEOUT = 10.0

    def __init__(
        self,
        config: SystemConfig,
        registrar: Optional[Registrar] = None,
        dns_provider: Optional[DNSProvider] = None,
        edge_router: Optional[EdgeRouter] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._config = config
        self._providers = {
            "registrar": registrar,
            "dns_provider": dns_provider,
            "edge_router": edge_router,
        }
        self._logger = logger

    async def run(self) -> SelfTestResult:
        start_time = time.perf_counter()

        config_result = self.validate_config()
        if not config_result.valid:
            return SelfTestResult(
                success=False,
                config_validation=config_result,
                total_duration_ms=_elapsed_ms(start_time),
            )

        probes = await asyncio.gather(*(
            self._probe(name, provider)
            for name, provider in self._providers.items()
            if provider is not None
        ))
        result = SelfTestResult(
            success=all(p.success for p in probes),
            config_validation=config_result,
            probe_results=list(probes),
            total_duration_ms=_elapsed_ms(start_time),
        )
        if self._logger:
            self._logger.info("SelfTest", "Self-test finished", {
                "success": result.success,
                "failed_probes": [p.provider for p in result.failed_probes],
            })
        return result

    def validate_config(self) -> ConfigValidationResult:
        """
        Checks:
        - Provider credentials (only the HMAC secret in simulation mode)
        - Ingress CNAME targets and A record IPs
        - Both reconciliation cron expressions
        - Provider API URLs use HTTPS
        """
        config = self._config
        errors: list[str] = []
        warnings: list[str] = []

        missing = config.missing_credentials()
        if config.simulation_mode:
            missing = [key for key in missing if key.startswith("persistence.")]
        errors.extend(f"Missing configuration: {key}" for key in missing)
        if config.persistence.hmac_secret == DEFAULT_HMAC_SECRET:
            warnings.append("HMAC secret is using the default value - change it for production")

        ingress = config.ingress
        if not ingress.cname_target:
            errors.append("Ingress CNAME target is not configured")
        if not ingress.portal_cname_target:
            errors.append("Portal CNAME target is not configured")
        if not ingress.a_record_ips:
            warnings.append("No ingress A record IPs configured; root domains can only verify via CNAME")
        for ip in ingress.a_record_ips:
            try:
                ipaddress.ip_address(ip)
            except ValueError:
                errors.append(f"Invalid ingress IP address: {ip}")

        parser = CronParser()
        for label, expression in (
            ("root_cron", config.reconciliation.root_cron),
            ("portal_cron", config.reconciliation.portal_cron),
        ):
            try:
                parser.parse(expression)
            except CronParseError as e:
                errors.append(f"reconciliation.{label}: {e.message}")

        if config.reconciliation.batch_size < 1:
            errors.append("reconciliation.batch_size must be at least 1")
        if config.retry.max_retries < 1:
            warnings.append("max_retries is less than 1 - no retries will be performed")

        for label, url in (
            ("registrar", config.registrar.api_url),
            ("dns_provider", config.dns_provider.base_url),
            ("edge_router", config.edge_router.base_url),
        ):
            if urlparse(url).scheme.lower() != "https":
                errors.append(f"{label} API URL must use HTTPS: {url}")

        if config.registrar.sandbox:
            warnings.append("Registrar sandbox is enabled; purchases are not real")
        if config.language not in SUPPORTED_LANGUAGES:
            errors.append(f"Unsupported language: {config.language}")

        return ConfigValidationResult(valid=not errors, errors=errors, warnings=warnings)

    async def _probe(self, name: str, provider) -> ProviderProbeResult:
        start_time = time.perf_counter()
        try:
            ok = await asyncio.wait_for(provider.ping(), timeout=self.PROBE_TIMEOUT)
        except asyncio.TimeoutError:
            return ProviderProbeResult(name, False, _elapsed_ms(start_time), f"Timed out after {self.PROBE_TIMEOUT}s")
        except DomainLifecycleError as e:
            return ProviderProbeResult(name, False, _elapsed_ms(start_time), e.message)
        except Exception as e:
            return ProviderProbeResult(name, False, _elapsed_ms(start_time), f"Unexpected error: {e}")
        return ProviderProbeResult(name, bool(ok), _elapsed_ms(start_time), None if ok else "Probe returned false")

    def print_results(self, result: SelfTestResult, language: str = "en") -> None:
        print(get_message("selftest.header", language))
        print("=" * 60)

        print(f"\n{get_message('selftest.config_validation', language)}")
        if result.config_validation.valid:
            print(f"  ✓ {get_message('cli.config_valid', language)}")
        else:
            for error in result.config_validation.errors:
                print(f"  ✗ {error}")
        for warning in result.config_validation.warnings:
            print(f"  ! {warning}")

        if result.probe_results:
            print(f"\n{get_message('selftest.connectivity', language)}")
            for probe in result.probe_results:
                mark = "✓" if probe.success else "✗"
                print(f"  {mark} {probe.provider} ({probe.response_time_ms:.0f}ms)")
                if probe.error:
                    print(f"      {probe.error}")

        print(f"\n{'-' * 60}")
        if result.success:
            print(f"✓ {get_message('selftest.passed', language)}")
        else:
            failed = len(result.failed_probes) + len(result.config_validation.errors)
            print(f"✗ {get_message('selftest.failed', language, count=failed)}")


async def run_self_test(
    config: SystemConfig,
    registrar: Optional[Registrar] = None,
    dns_provider: Optional[DNSProvider] = None,
    edge_router: Optional[EdgeRouter] = None,
    print_output: bool = True,
    logger: Optional[AuditLogger] = None,
) -> SelfTestResult:
    self_test = SelfTest(config, registrar, dns_provider, edge_router, logger)
    result = await self_test.run()
    if print_output:
        self_test.print_results(result, config.language)
    return result
