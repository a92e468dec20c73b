"""
Internationalization (i18n) module for the domain lifecycle system.

Provides translations for all user-facing messages in English (en) and Spanish (es):
nameserver instructions, verification hints, order outcomes and CLI output.
"""

from typing import Optional


# Supported languages
SUPPORTED_LANGUAGES = frozenset({"en", "es"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Nameserver handoff instructions
    "instructions.step1": {
        "en": "Go to your domain registrar (GoDaddy, Namecheap, etc.)",
        "es": "Ve a tu registrador de dominios (GoDaddy, Namecheap, etc.)",
    },
    "instructions.step2": {
        "en": 'Find "Nameservers" or "DNS Settings"',
        "es": 'Busca "Nameservers" o "Configuración DNS"',
    },
    "instructions.step3": {
        "en": "Change nameservers to: {nameservers}",
        "es": "Cambia los nameservers a: {nameservers}",
    },
    "instructions.step4": {
        "en": "Wait 5-30 minutes for propagation",
        "es": "Espera de 5 a 30 minutos para la propagación",
    },
    "instructions.step5": {
        "en": 'Click "Verify" to complete setup',
        "es": 'Haz clic en "Verificar" para completar la configuración',
    },

    # Nameserver verification
    "nameservers.active": {
        "en": "Nameservers verified. {domain} is active and SSL is enabled.",
        "es": "Nameservers verificados. {domain} está activo y el SSL está habilitado.",
    },
    "nameservers.pending": {
        "en": "Nameservers not detected yet for {domain}. Propagation can take up to 48 hours.",
        "es": "Aún no se detectan los nameservers de {domain}. La propagación puede tardar hasta 48 horas.",
    },

    # DNS record verification
    "dns.verified": {
        "en": "DNS records verified for {domain}.",
        "es": "Registros DNS verificados para {domain}.",
    },
    "dns.pending": {
        "en": "DNS records for {domain} are not pointing to us yet.",
        "es": "Los registros DNS de {domain} aún no apuntan a nosotros.",
    },
    "dns.record_a": {
        "en": "A record for the root domain pointing to our IP addresses",
        "es": "Registro A del dominio raíz apuntando a nuestras direcciones IP",
    },
    "dns.record_cname": {
        "en": "CNAME record for www pointing to {target}",
        "es": "Registro CNAME para www apuntando a {target}",
    },
    "dns.record_txt": {
        "en": "TXT record proving domain ownership",
        "es": "Registro TXT que demuestra la propiedad del dominio",
    },
    "portal.cname": {
        "en": "CNAME record pointing to {target}",
        "es": "Registro CNAME apuntando a {target}",
    },
    "portal.txt": {
        "en": "TXT record at {host} with the verification token",
        "es": "Registro TXT en {host} con el token de verificación",
    },
    "portal.verified": {
        "en": "Portal domain {domain} verified.",
        "es": "Dominio del portal {domain} verificado.",
    },
    "portal.pending": {
        "en": "Portal domain {domain} is not verified yet.",
        "es": "El dominio del portal {domain} aún no está verificado.",
    },

    # Orders
    "order.completed": {
        "en": "Domain {domain} registered and configured.",
        "es": "Dominio {domain} registrado y configurado.",
    },
    "order.already_completed": {
        "en": "Order {order_id} was already completed.",
        "es": "El pedido {order_id} ya estaba completado.",
    },
    "order.failed": {
        "en": "Registration of {domain} failed: {error}",
        "es": "El registro de {domain} falló: {error}",
    },

    # Domain removal and mapping
    "domain.removed": {
        "en": "Domain {domain} removed.",
        "es": "Dominio {domain} eliminado.",
    },
    "domain.mapping_synced": {
        "en": "Domain {domain} now routes to project {project_id}.",
        "es": "El dominio {domain} ahora apunta al proyecto {project_id}.",
    },

    # Reconciliation and CLI output
    "reconcile.summary": {
        "en": "Reconciled {total} domains: {advanced} advanced, {unverified} still pending, {failed} failed, {skipped} skipped",
        "es": "Se reconciliaron {total} dominios: {advanced} avanzaron, {unverified} siguen pendientes, {failed} fallaron, {skipped} omitidos",
    },
    "cli.scheduler_started": {
        "en": "Scheduler started. Press Ctrl+C to stop.",
        "es": "Planificador iniciado. Pulsa Ctrl+C para detenerlo.",
    },
    "cli.scheduler_stopped": {
        "en": "Scheduler stopped.",
        "es": "Planificador detenido.",
    },
    "cli.config_valid": {
        "en": "Configuration is valid.",
        "es": "La configuración es válida.",
    },
    "cli.config_created": {
        "en": "Default configuration written to {path}",
        "es": "Configuración por defecto escrita en {path}",
    },
    "cli.error": {
        "en": "Error: {message}",
        "es": "Error: {message}",
    },

    # Self-test
    "selftest.header": {
        "en": "Domain lifecycle self-test",
        "es": "Autodiagnóstico del ciclo de vida de dominios",
    },
    "selftest.config_validation": {
        "en": "Configuration:",
        "es": "Configuración:",
    },
    "selftest.connectivity": {
        "en": "Provider connectivity:",
        "es": "Conectividad con proveedores:",
    },
    "selftest.passed": {
        "en": "All self-test checks passed",
        "es": "Todas las comprobaciones del autodiagnóstico pasaron",
    },
    "selftest.failed": {
        "en": "Self-test failed: {count} check(s) failed",
        "es": "El autodiagnóstico falló: {count} comprobación(es) fallaron",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'instructions.step1')
        language: Language code ('en' or 'es'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.

    Examples:
        >>> get_message('instructions.step3', 'en', nameservers='a.ns, b.ns')
        'Change nameservers to: a.ns, b.ns'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language) or translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            pass

    return message


def nameserver_instructions(nameservers: list[str], language: Optional[str] = None) -> dict[str, str]:
    """The five-step handoff guide returned by the external-domain setup."""
    listed = ", ".join(nameservers)
    return {
        f"step{n}": get_message(f"instructions.step{n}", language, nameservers=listed)
        for n in range(1, 6)
    }


def get_missing_translations(language: str) -> set[str]:
    """Message keys with no translation for a language."""
    return {key for key, translations in TRANSLATIONS.items() if language not in translations}


def validate_translations() -> dict[str, set[str]]:
    """Map each supported language to its missing keys; empty sets mean complete."""
    return {language: get_missing_translations(language) for language in SUPPORTED_LANGUAGES}
