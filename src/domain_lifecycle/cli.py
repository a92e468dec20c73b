"""
Command-line interface for the domain lifecycle system.

Commands:
- connect / setup-external / verify / verify-nameservers / ssl / remove:
  custom-domain operations run on behalf of a user
- availability / purchase / order-status: registrar operations
- reconcile: one reconciliation pass; schedule: run both passes on cron
- self-test: configuration and provider connectivity check
- config: configuration management (show, init, validate)

Every command accepts --dry-run to use simulated providers.
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger, create_logger
from .config import (
    DNSProviderConfig,
    EdgeRouterConfig,
    IngressConfig,
    LoggingConfig,
    PersistenceConfig,
    ReconciliationConfig,
    RegistrarConfig,
    RetryConfig,
    SystemConfig,
)
from .dns_provider_client import DNSProviderClient
from .dns_resolver import DnspythonResolver
from .edge_router import EdgeRouterClient
from .exceptions import ConfigurationError, DomainLifecycleError
from .i18n import get_message
from .orchestrator import ProvisioningOrchestrator
from .providers import AccessPolicy, StaticAccessPolicy
from .reconciler import Reconciler
from .registrar_client import RegistrarClient
from .registry import DomainRegistry
from .retry_manager import RetryManager
from .scheduler import Scheduler, schedule_reconciliation
from .self_test import DEFAULT_HMAC_SECRET, run_self_test
from .service import CallerContext, DomainService
from .verification_engine import VerificationEngine


DEFAULT_CONFIG_DIR = Path.home() / ".domain_lifecycle"
SECRET_KEYS = ("token", "api_token", "global_api_key", "hmac_secret", "audit_signing_key")


# ============================================================================
# Configuration loading
# ============================================================================


def create_default_config(
    simulation_mode: bool = False,
    language: str = "en",
    state_file: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
) -> SystemConfig:
    """Default configuration; credentials stay empty until provided."""
    if state_file is None:
        state_file = DEFAULT_CONFIG_DIR / "registry.json"

    return SystemConfig(
        registrar=RegistrarConfig(),
        dns_provider=DNSProviderConfig(),
        edge_router=EdgeRouterConfig(),
        ingress=IngressConfig(),
        reconciliation=ReconciliationConfig(),
        retry=RetryConfig(),
        persistence=PersistenceConfig(state_file_path=state_file, hmac_secret=hmac_secret),
        logging=LoggingConfig(),
        language=language,
        simulation_mode=simulation_mode,
    )


def _section(cls, data: Optional[dict]):
    """Build a config dataclass from a dict, ignoring unknown keys."""
    data = data or {}
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Returns:
        SystemConfig, or None when the file is missing or malformed
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        persistence_data = data.get("persistence", {})
        state_file_path = persistence_data.get("state_file_path")
        persistence = PersistenceConfig(
            state_file_path=Path(state_file_path) if state_file_path else None,
            hmac_secret=persistence_data.get("hmac_secret", ""),
        )

        return SystemConfig(
            registrar=_section(RegistrarConfig, data.get("registrar")),
            dns_provider=_section(DNSProviderConfig, data.get("dns_provider")),
            edge_router=_section(EdgeRouterConfig, data.get("edge_router")),
            ingress=_section(IngressConfig, data.get("ingress")),
            reconciliation=_section(ReconciliationConfig, data.get("reconciliation")),
            retry=_section(RetryConfig, data.get("retry")),
            persistence=persistence,
            logging=_section(LoggingConfig, data.get("logging")),
            language=data.get("language", "en"),
            simulation_mode=data.get("simulation_mode", False),
            startup_self_test=data.get("startup_self_test", False),
        )

    except (json.JSONDecodeError, KeyError, TypeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def config_to_dict(config: SystemConfig, mask_secrets: bool = False) -> dict:
    def section(obj) -> dict:
        out = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if isinstance(value, Path):
                value = str(value)
            if mask_secrets and f.name in SECRET_KEYS and value:
                value = "***"
            out[f.name] = value
        return out

    return {
        "registrar": section(config.registrar),
        "dns_provider": section(config.dns_provider),
        "edge_router": section(config.edge_router),
        "ingress": section(config.ingress),
        "reconciliation": section(config.reconciliation),
        "retry": section(config.retry),
        "persistence": section(config.persistence),
        "logging": section(config.logging),
        "language": config.language,
        "simulation_mode": config.simulation_mode,
        "startup_self_test": config.startup_self_test,
    }


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)
        return True
    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(code="invalid_env", message=f"{name} must be an integer", details={"name": name})


def _env_list(name: str) -> Optional[list[str]]:
    value = os.getenv(name, "")
    items = [p.strip() for chunk in value.replace(";", ",").split(",") for p in chunk.split()]
    return [p for p in items if p] or None


def load_config_from_env(env_file: Optional[Path] = None) -> SystemConfig:
    """
    Read configuration from the environment, after loading a .env file.

    Variables that are unset keep their defaults.
    """
    load_dotenv(dotenv_path=env_file)
    config = create_default_config(
        simulation_mode=_env_bool("SIMULATION_MODE"),
        language=os.getenv("LANGUAGE", "en").strip().lower() or "en",
        state_file=Path(os.environ["STATE_FILE"]) if os.getenv("STATE_FILE") else None,
        hmac_secret=os.getenv("STATE_HMAC_SECRET", ""),
    )
    config.startup_self_test = _env_bool("STARTUP_SELF_TEST")

    config.registrar.username = os.getenv("REGISTRAR_USERNAME", "").strip()
    config.registrar.token = os.getenv("REGISTRAR_TOKEN", "").strip()
    config.registrar.sandbox = _env_bool("REGISTRAR_SANDBOX")

    config.dns_provider.api_token = os.getenv("DNS_PROVIDER_API_TOKEN", "").strip()
    config.dns_provider.account_email = os.getenv("DNS_PROVIDER_ACCOUNT_EMAIL", "").strip()
    config.dns_provider.global_api_key = os.getenv("DNS_PROVIDER_GLOBAL_API_KEY", "").strip()
    config.dns_provider.account_id = os.getenv("DNS_PROVIDER_ACCOUNT_ID", "").strip()

    config.edge_router.account_id = os.getenv("EDGE_ROUTER_ACCOUNT_ID", config.dns_provider.account_id).strip()
    config.edge_router.api_token = os.getenv("EDGE_ROUTER_API_TOKEN", config.dns_provider.api_token).strip()
    config.edge_router.service = os.getenv("EDGE_ROUTER_SERVICE", "").strip()
    config.edge_router.environment = os.getenv("EDGE_ROUTER_ENVIRONMENT", "production").strip()

    config.ingress.cname_target = os.getenv("INGRESS_CNAME_TARGET", config.ingress.cname_target).strip()
    config.ingress.a_record_ips = _env_list("INGRESS_A_RECORD_IPS") or config.ingress.a_record_ips
    config.ingress.portal_cname_target = os.getenv("PORTAL_CNAME_TARGET", config.ingress.portal_cname_target).strip()

    config.reconciliation.root_cron = os.getenv("ROOT_RECONCILE_CRON", config.reconciliation.root_cron)
    config.reconciliation.portal_cron = os.getenv("PORTAL_RECONCILE_CRON", config.reconciliation.portal_cron)
    config.reconciliation.max_verification_attempts = _env_int("MAX_VERIFICATION_ATTEMPTS", None)

    config.logging.level = os.getenv("LOG_LEVEL", "info").strip().lower()
    config.logging.output_format = os.getenv("LOG_FORMAT", "text").strip().lower()
    config.logging.audit_signing_key = os.getenv("AUDIT_SIGNING_KEY") or None
    config.logging.audit_mode = bool(config.logging.audit_signing_key)
    return config


# ============================================================================
# Wiring
# ============================================================================


@dataclass
class Application:
    """Every component, wired once from configuration."""

    config: SystemConfig
    logger: AuditLogger
    registry: DomainRegistry
    registrar: RegistrarClient
    dns_provider: DNSProviderClient
    edge_router: EdgeRouterClient
    verification_engine: VerificationEngine
    orchestrator: ProvisioningOrchestrator
    reconciler: Reconciler
    scheduler: Scheduler
    service: DomainService

    async def aclose(self) -> None:
        await self.registrar.close()
        await self.dns_provider.close()
        await self.edge_router.close()


def build_application(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
    access_policy: Optional[AccessPolicy] = None,
) -> Application:
    """
    Validate credentials and construct all components.

    Raises:
        ConfigurationError: If required credentials are missing
        TamperingError: If the persisted registry fails its HMAC check
    """
    config.validate_credentials()
    if logger is None:
        logger = create_logger(
            output_format=config.logging.output_format,
            level=config.logging.level,
            audit_signing_key=config.logging.audit_signing_key if config.logging.audit_mode else None,
        )
    simulation = config.simulation_mode

    state_file = config.persistence.state_file_path
    if state_file is not None:
        state_file.parent.mkdir(parents=True, exist_ok=True)
    registry = DomainRegistry(file_path=state_file, hmac_secret=config.persistence.hmac_secret)
    registry.load()

    registrar = RegistrarClient(config.registrar, simulation_mode=simulation, logger=logger)
    dns_provider = DNSProviderClient(config.dns_provider, simulation_mode=simulation, logger=logger)
    edge_router = EdgeRouterClient(config.edge_router, dns_provider, simulation_mode=simulation, logger=logger)
    resolver = DnspythonResolver(simulation_mode=simulation, logger=logger)
    engine = VerificationEngine(resolver, config.ingress, logger)

    orchestrator = ProvisioningOrchestrator(
        registry=registry,
        registrar=registrar,
        dns_provider=dns_provider,
        edge_router=edge_router,
        verification_engine=engine,
        ingress=config.ingress,
        retry_manager=RetryManager(config.retry),
        logger=logger,
        language=config.language,
    )
    access_policy = access_policy or StaticAccessPolicy(allow_any_project=True)
    reconciler = Reconciler(registry, engine, dns_provider, orchestrator, config.reconciliation, logger, access_policy)
    scheduler = Scheduler(logger=logger)
    schedule_reconciliation(scheduler, reconciler, config.reconciliation)

    service = DomainService(
        registry=registry,
        orchestrator=orchestrator,
        verification_engine=engine,
        reconciler=reconciler,
        registrar=registrar,
        access_policy=access_policy,
        ingress=config.ingress,
        logger=logger,
        language=config.language,
    )
    return Application(
        config=config,
        logger=logger,
        registry=registry,
        registrar=registrar,
        dns_provider=dns_provider,
        edge_router=edge_router,
        verification_engine=engine,
        orchestrator=orchestrator,
        reconciler=reconciler,
        scheduler=scheduler,
        service=service,
    )


# ============================================================================
# Commands
# ============================================================================


def _load_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None
    else:
        config = load_config_from_env(Path(args.env_file) if getattr(args, "env_file", None) else None)

    if getattr(args, "dry_run", False):
        config.simulation_mode = True
        if not config.persistence.hmac_secret:
            config.persistence.hmac_secret = DEFAULT_HMAC_SECRET
    if getattr(args, "language", None):
        config.language = args.language
    if getattr(args, "verbose", False):
        config.logging.level = "debug"
    return config


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _with_app(config: SystemConfig, action) -> int:
    """Build the application, run one action and report typed errors."""
    try:
        app = build_application(config)
    except DomainLifecycleError as e:
        print(get_message("cli.error", config.language, message=e.message), file=sys.stderr)
        return 1

    try:
        if config.startup_self_test:
            result = await run_self_test(config, app.registrar, app.dns_provider, app.edge_router, print_output=False, logger=app.logger)
            if not result.success:
                print(get_message("selftest.failed", config.language, count=len(result.failed_probes)), file=sys.stderr)
                return 1
        return await action(app)
    except DomainLifecycleError as e:
        print(get_message("cli.error", config.language, message=e.message), file=sys.stderr)
        _print_json({"error": e.to_dict()})
        return 1
    finally:
        await app.aclose()


def _rpc_command(call):
    """Wrap a service call into an argparse handler that prints the response."""
    def handler(args: argparse.Namespace) -> int:
        config = _load_config(args)
        if config is None:
            return 1

        async def action(app: Application) -> int:
            caller = CallerContext(user_id=getattr(args, "user", None))
            _print_json(await call(app.service, caller, args))
            return 0

        return asyncio.run(_with_app(config, action))
    return handler


cmd_connect = _rpc_command(lambda s, c, a: s.add_custom_domain(c, a.domain, a.project))
cmd_setup_external = _rpc_command(lambda s, c, a: s.setup_external_domain(c, a.domain, a.project))
cmd_verify = _rpc_command(lambda s, c, a: s.verify_domain_dns(c, a.domain))
cmd_verify_nameservers = _rpc_command(lambda s, c, a: s.verify_external_domain_nameservers(c, a.domain))
cmd_ssl = _rpc_command(lambda s, c, a: s.check_domain_ssl(c, a.domain))
cmd_remove = _rpc_command(lambda s, c, a: s.remove_custom_domain(c, a.domain))
cmd_availability = _rpc_command(lambda s, c, a: s.check_domain_availability(a.domains))
cmd_purchase = _rpc_command(lambda s, c, a: s.purchase_domain(c, a.domain, a.years, _read_contact(a.contact)))
cmd_order_status = _rpc_command(lambda s, c, a: s.check_domain_order_status(c, a.order_id))


def _read_contact(path: Optional[str]) -> Optional[dict]:
    if not path:
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Handle the 'reconcile' command."""
    config = _load_config(args)
    if config is None:
        return 1

    async def action(app: Application) -> int:
        reports = []
        if args.flow in ("root", "all"):
            reports.append(await app.reconciler.run_root_pass())
        if args.flow in ("portal", "all"):
            reports.append(await app.reconciler.run_portal_pass())
        for report in reports:
            print(f"[{report.flow}] " + get_message(
                "reconcile.summary",
                config.language,
                total=report.total,
                advanced=report.advanced,
                unverified=report.unverified,
                failed=report.failed,
                skipped=report.skipped,
            ))
            for domain, reason in report.failures.items():
                print(f"  - {domain}: {reason}")
        return 1 if any(r.failed for r in reports) else 0

    return asyncio.run(_with_app(config, action))


def cmd_schedule(args: argparse.Namespace) -> int:
    """Handle the 'schedule' command."""
    config = _load_config(args)
    if config is None:
        return 1

    async def action(app: Application) -> int:
        print(get_message("cli.scheduler_started", config.language))
        for task in app.scheduler.list_tasks():
            print(f"  {task.name}: {task.schedule.expression}")
        await app.scheduler.run()
        return 0

    try:
        return asyncio.run(_with_app(config, action))
    except KeyboardInterrupt:
        print(get_message("cli.scheduler_stopped", config.language))
        return 0


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    config = _load_config(args)
    if config is None:
        return 1

    async def run() -> int:
        registrar = RegistrarClient(config.registrar, simulation_mode=config.simulation_mode)
        dns_provider = DNSProviderClient(config.dns_provider, simulation_mode=config.simulation_mode)
        edge_router = EdgeRouterClient(config.edge_router, dns_provider, simulation_mode=config.simulation_mode)
        try:
            result = await run_self_test(config, registrar, dns_provider, edge_router, print_output=True)
        finally:
            await registrar.close()
            await dns_provider.close()
            await edge_router.close()
        return 0 if result.success else 1

    return asyncio.run(run())


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_DIR / "config.json"
    language = args.language or "en"

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1
        print(f"Configuration from: {config_path}")
        _print_json(config_to_dict(config, mask_secrets=True))
        return 0

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1
        if save_config_to_file(create_default_config(language=language), config_path):
            print(get_message("cli.config_created", language, path=config_path))
            return 0
        return 1

    if args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1
        try:
            config.validate_credentials()
        except ConfigurationError as e:
            print(get_message("cli.error", language, message=e.message), file=sys.stderr)
            return 1
        print(get_message("cli.config_valid", language))
        return 0

    return 1


# ============================================================================
# Parser
# ============================================================================


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", "-c", help="Path to configuration file (default: environment / .env)")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--dry-run", action="store_true", help="Simulation mode - no real provider calls")
    parser.add_argument("--language", "-l", choices=["en", "es"], help="Output language")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-lifecycle",
        description="Custom domain provisioning and DNS reconciliation",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def domain_command(name: str, help_text: str, func, project: bool = False) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("domain", help="Domain name (e.g., example.com)")
        sub.add_argument("--user", "-u", required=True, help="Acting user id")
        if project:
            sub.add_argument("--project", "-p", required=True, help="Project the domain serves")
        _add_common(sub)
        sub.set_defaults(func=func)
        return sub

    domain_command("connect", "Connect a domain by DNS records", cmd_connect, project=True)
    domain_command("setup-external", "Host DNS for an external domain", cmd_setup_external, project=True)
    domain_command("verify", "Check the domain's DNS records now", cmd_verify)
    domain_command("verify-nameservers", "Check nameserver delegation", cmd_verify_nameservers)
    domain_command("ssl", "Show SSL status", cmd_ssl)
    domain_command("remove", "Disconnect a domain", cmd_remove)

    availability = subparsers.add_parser("availability", help="Check registrar availability and prices")
    availability.add_argument("domains", nargs="+", help="Up to 50 domain names")
    _add_common(availability)
    availability.set_defaults(func=cmd_availability)

    purchase = domain_command("purchase", "Buy and provision a domain", cmd_purchase)
    purchase.add_argument("--years", "-y", type=int, default=1, help="Registration term, 1-10 years")
    purchase.add_argument("--contact", help="Path to a JSON file with registrant contact info")

    order_status = subparsers.add_parser("order-status", help="Show a purchase order's status")
    order_status.add_argument("order_id", help="Order id")
    order_status.add_argument("--user", "-u", required=True, help="Acting user id")
    _add_common(order_status)
    order_status.set_defaults(func=cmd_order_status)

    reconcile = subparsers.add_parser("reconcile", help="Run one reconciliation pass")
    reconcile.add_argument("--flow", choices=["root", "portal", "all"], default="all")
    _add_common(reconcile)
    reconcile.set_defaults(func=cmd_reconcile)

    schedule = subparsers.add_parser("schedule", help="Run reconciliation on its cron schedule")
    _add_common(schedule)
    schedule.set_defaults(func=cmd_schedule)

    self_test = subparsers.add_parser("self-test", help="Validate configuration and provider connectivity")
    _add_common(self_test)
    self_test.set_defaults(func=cmd_self_test)

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument("action", choices=["show", "init", "validate"], help="Configuration action")
    config_parser.add_argument("--path", "-p", help="Path to configuration file")
    config_parser.add_argument("--force", "-f", action="store_true", help="Overwrite an existing configuration")
    config_parser.add_argument("--language", "-l", choices=["en", "es"], help="Language for messages")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
