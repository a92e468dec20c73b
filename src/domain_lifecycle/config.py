"""
Configuration dataclasses for the domain lifecycle system.

This module defines all configuration structures used throughout the system,
including provider credentials, ingress targets, reconciliation cadence,
retry logic, persistence, and logging configuration.

Credentials are resolved once at process startup and injected into the
provider clients; nothing in the package reads them from anywhere else.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError


# Google-fronted ingress addresses that a root A record may point at
DEFAULT_INGRESS_IPS = [
    "216.239.32.21",
    "216.239.34.21",
    "216.239.36.21",
    "216.239.38.21",
]


@dataclass
class RegistrarConfig:
    """Domain registrar (reseller API) configuration."""

    username: str = ""
    token: str = ""
    sandbox: bool = False
    base_url: str = "https://api.name.com/v4"
    sandbox_base_url: str = "https://api.dev.name.com/v4"
    price_margin: float = 0.20
    timeout_seconds: float = 30.0

    @property
    def api_url(self) -> str:
        """Base URL for the active environment."""
        return self.sandbox_base_url if self.sandbox else self.base_url


@dataclass
class DNSProviderConfig:
    """DNS hosting / edge TLS provider configuration."""

    api_token: str = ""
    account_email: str = ""
    global_api_key: str = ""
    account_id: str = ""
    base_url: str = "https://api.cloudflare.com/client/v4"
    timeout_seconds: float = 30.0

    @property
    def uses_token_auth(self) -> bool:
        """True when a scoped bearer token is configured."""
        return bool(self.api_token)


@dataclass
class EdgeRouterConfig:
    """Edge router (worker custom domain) configuration."""

    account_id: str = ""
    api_token: str = ""
    service: str = ""
    environment: str = "production"
    base_url: str = "https://api.cloudflare.com/client/v4"
    timeout_seconds: float = 30.0


@dataclass
class IngressConfig:
    """Where custom domains must point once connected."""

    cname_target: str = "ghs.googlehosted.com"
    a_record_ips: list[str] = field(default_factory=lambda: list(DEFAULT_INGRESS_IPS))
    portal_cname_target: str = "portal.ghs.googlehosted.com"
    txt_prefix: str = "_verify"
    portal_txt_prefix: str = "_portal-verify"


@dataclass
class ReconciliationConfig:
    """Cadence and limits of the background reconciliation passes."""

    root_cron: str = "*/10 * * * *"
    portal_cron: str = "0 */6 * * *"
    batch_size: int = 100
    per_domain_timeout_seconds: float = 30.0
    # None keeps retrying forever
    max_verification_attempts: Optional[int] = None


@dataclass
class RetryConfig:
    """Retry behavior configuration."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    retryable_errors: list[str] = field(
        default_factory=lambda: ["timeout", "server_error", "rate_limited", "network_error"]
    )


@dataclass
class PersistenceConfig:
    """Persistence and registry storage configuration."""

    state_file_path: Optional[Path]
    hmac_secret: str


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    registrar: RegistrarConfig
    dns_provider: DNSProviderConfig
    edge_router: EdgeRouterConfig
    ingress: IngressConfig
    reconciliation: ReconciliationConfig
    retry: RetryConfig
    persistence: PersistenceConfig
    logging: LoggingConfig
    language: str = "en"  # 'en' or 'es'
    simulation_mode: bool = False
    startup_self_test: bool = False

    def missing_credentials(self) -> list[str]:
        """Return the names of every required credential that is absent."""
        missing = []
        if not self.registrar.username:
            missing.append("registrar.username")
        if not self.registrar.token:
            missing.append("registrar.token")
        if not self.dns_provider.uses_token_auth and not (
            self.dns_provider.account_email and self.dns_provider.global_api_key
        ):
            missing.append("dns_provider.api_token (or account_email + global_api_key)")
        if not self.dns_provider.account_id:
            missing.append("dns_provider.account_id")
        if not self.edge_router.account_id:
            missing.append("edge_router.account_id")
        if not self.edge_router.api_token:
            missing.append("edge_router.api_token")
        if not self.edge_router.service:
            missing.append("edge_router.service")
        if not self.persistence.hmac_secret:
            missing.append("persistence.hmac_secret")
        return missing

    def validate_credentials(self) -> None:
        """
        Fail fast when provider credentials are absent.

        Simulation mode never talks to a provider, so only the persistence
        secret is required there.

        Raises:
            ConfigurationError: listing every missing key
        """
        missing = self.missing_credentials()
        if self.simulation_mode:
            missing = [key for key in missing if key.startswith("persistence.")]
        if missing:
            raise ConfigurationError(
                code="missing_credentials",
                message=f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing},
            )
