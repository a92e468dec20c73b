"""
Domain Lifecycle - custom domain provisioning and DNS reconciliation.

This package connects tenant-owned domain names to hosted projects: it buys
or adopts the domain, hosts its DNS, verifies live records, activates TLS,
registers the hostname with the edge router, and keeps reconciling domains
that are still waiting on DNS.
"""

__version__ = "0.1.0"
__author__ = "Domain Lifecycle Team"

from domain_lifecycle.exceptions import (
    DomainLifecycleError,
    ValidationError,
    AuthenticationError,
    OwnershipError,
    ConflictError,
    LeaseUnavailableError,
    NotFoundError,
    PreconditionError,
    StateTransitionError,
    ExternalProviderError,
    PersistenceError,
    TamperingError,
    ConfigurationError,
    rpc_error,
)
from domain_lifecycle.enums import (
    DomainStatus,
    SSLStatus,
    OrderStatus,
    PortalDomainStatus,
    DomainSource,
    RecordType,
    LookupStatus,
    ProviderErrorCode,
    LogLevel,
)
from domain_lifecycle.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    normalize_domain,
    registrable_root,
    generate_verification_token,
)
from domain_lifecycle.config import (
    RegistrarConfig,
    DNSProviderConfig,
    EdgeRouterConfig,
    IngressConfig,
    ReconciliationConfig,
    RetryConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
)
from domain_lifecycle.models import (
    DnsRecord,
    DomainRecord,
    DomainOrder,
    PortalDomainRecord,
    RoutingRecord,
    LookupResult,
    DomainAvailability,
    RegistrarPurchase,
    ZoneInfo,
    ProviderRecord,
    RecordCheck,
    VerificationResult,
    StepOutcome,
    ProvisioningResult,
    ReconciliationReport,
)
from domain_lifecycle.providers import (
    DNSResolver,
    Registrar,
    DNSProvider,
    EdgeRouter,
    AccessPolicy,
    StaticAccessPolicy,
)
from domain_lifecycle.dns_resolver import DnspythonResolver
from domain_lifecycle.registrar_client import RegistrarClient, apply_margin
from domain_lifecycle.dns_provider_client import DNSProviderClient
from domain_lifecycle.edge_router import EdgeRouterClient
from domain_lifecycle.retry_manager import (
    RetryManager,
    RetryResult,
)
from domain_lifecycle.audit_logger import (
    AuditLogger,
    LogEntry,
    create_logger,
)
from domain_lifecycle.i18n import (
    get_message,
    nameserver_instructions,
    get_missing_translations,
    validate_translations,
    TRANSLATIONS,
    SUPPORTED_LANGUAGES,
    DEFAULT_LANGUAGE,
)
from domain_lifecycle.state_machine import (
    can_transition,
    can_transition_ssl,
    can_transition_order,
    can_transition_portal,
    advance_one,
    is_terminal,
)
from domain_lifecycle.registry import DomainRegistry
from domain_lifecycle.verification_engine import VerificationEngine
from domain_lifecycle.orchestrator import ProvisioningOrchestrator
from domain_lifecycle.reconciler import Reconciler
from domain_lifecycle.scheduler import (
    Scheduler,
    CronSchedule,
    CronField,
    CronParser,
    CronParseError,
    ScheduledTask,
    schedule_reconciliation,
)
from domain_lifecycle.service import (
    CallerContext,
    DomainService,
)
from domain_lifecycle.self_test import (
    SelfTest,
    SelfTestResult,
    ProviderProbeResult,
    ConfigValidationResult,
    run_self_test,
)
from domain_lifecycle.cli import (
    main as cli_main,
    Application,
    build_application,
    create_parser,
    create_default_config,
    load_config_from_file,
    load_config_from_env,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "DomainLifecycleError",
    "ValidationError",
    "AuthenticationError",
    "OwnershipError",
    "ConflictError",
    "LeaseUnavailableError",
    "NotFoundError",
    "PreconditionError",
    "StateTransitionError",
    "ExternalProviderError",
    "PersistenceError",
    "TamperingError",
    "ConfigurationError",
    "rpc_error",
    # Enums
    "DomainStatus",
    "SSLStatus",
    "OrderStatus",
    "PortalDomainStatus",
    "DomainSource",
    "RecordType",
    "LookupStatus",
    "ProviderErrorCode",
    "LogLevel",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "normalize_domain",
    "registrable_root",
    "generate_verification_token",
    # Configuration
    "RegistrarConfig",
    "DNSProviderConfig",
    "EdgeRouterConfig",
    "IngressConfig",
    "ReconciliationConfig",
    "RetryConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    # Models
    "DnsRecord",
    "DomainRecord",
    "DomainOrder",
    "PortalDomainRecord",
    "RoutingRecord",
    "LookupResult",
    "DomainAvailability",
    "RegistrarPurchase",
    "ZoneInfo",
    "ProviderRecord",
    "RecordCheck",
    "VerificationResult",
    "StepOutcome",
    "ProvisioningResult",
    "ReconciliationReport",
    # Providers
    "DNSResolver",
    "Registrar",
    "DNSProvider",
    "EdgeRouter",
    "AccessPolicy",
    "StaticAccessPolicy",
    "DnspythonResolver",
    "RegistrarClient",
    "apply_margin",
    "DNSProviderClient",
    "EdgeRouterClient",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    "create_logger",
    # I18n
    "get_message",
    "nameserver_instructions",
    "get_missing_translations",
    "validate_translations",
    "TRANSLATIONS",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    # State machine
    "can_transition",
    "can_transition_ssl",
    "can_transition_order",
    "can_transition_portal",
    "advance_one",
    "is_terminal",
    # Core
    "DomainRegistry",
    "VerificationEngine",
    "ProvisioningOrchestrator",
    "Reconciler",
    # Scheduler
    "Scheduler",
    "CronSchedule",
    "CronField",
    "CronParser",
    "CronParseError",
    "ScheduledTask",
    "schedule_reconciliation",
    # Service
    "CallerContext",
    "DomainService",
    # Self-Test
    "SelfTest",
    "SelfTestResult",
    "ProviderProbeResult",
    "ConfigValidationResult",
    "run_self_test",
    # CLI
    "cli_main",
    "Application",
    "build_application",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "load_config_from_env",
    "save_config_to_file",
]
