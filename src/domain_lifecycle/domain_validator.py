"""
Domain validation and normalization module.

Turns whatever the user typed ("HTTPS://WWW.Example.com/path") into the
registry key ("example.com"), rejects malformed names, and derives the
registrable root used when resolving which DNS zone owns a hostname.
"""

import re
import secrets
import string
from dataclasses import dataclass
from typing import Optional

import idna

from .exceptions import ValidationError


# Forbidden characters in domain names (control chars, spaces, special symbols)
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?`~_]'
)

# Label rules: alnum at both ends, hyphens inside, at least one dot, alpha TLD
DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+(xn--[a-z0-9-]{2,59}|[a-z]{2,63})$"
)

SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://")

# Public suffixes with two labels that commonly carry customer domains
MULTI_LABEL_SUFFIXES = frozenset({
    "co.uk", "org.uk", "me.uk", "ac.uk", "gov.uk",
    "com.au", "net.au", "org.au",
    "co.nz", "org.nz",
    "com.br", "com.mx", "com.ar", "com.co", "com.pe", "com.es",
    "co.jp", "co.za", "co.in", "com.sg", "com.tr",
})

TOKEN_ALPHABET = string.ascii_lowercase + string.digits
TOKEN_LENGTH = 32


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[str]


def normalize_domain(raw_domain: str) -> str:
    """
    Reduce user input to the registry key.

    Lowercases, strips whitespace, scheme, path, trailing dots/slashes and
    a leading ``www.``. Applying it twice gives the same result as once.

    Args:
        raw_domain: Domain as typed by the user

    Returns:
        Normalized domain (may still be invalid; see DomainValidator)
    """
    domain = (raw_domain or "").strip().lower()
    domain = SCHEME_PATTERN.sub("", domain)
    domain = domain.split("/", 1)[0]
    domain = domain.split("?", 1)[0].split("#", 1)[0]
    # Drop an explicit port
    if ":" in domain:
        domain = domain.split(":", 1)[0]
    # Stripping "www." can expose more whitespace or dots; repeat until stable
    previous = None
    while domain != previous:
        previous = domain
        domain = domain.strip().rstrip(".")
        if domain.startswith("www."):
            domain = domain[4:]
    return domain


def registrable_root(hostname: str) -> str:
    """
    Strip subdomains down to the registrable root.

    ``shop.example.com`` -> ``example.com``,
    ``a.b.example.co.uk`` -> ``example.co.uk``.
    """
    labels = normalize_domain(hostname).split(".")
    if len(labels) <= 2:
        return ".".join(labels)
    if ".".join(labels[-2:]) in MULTI_LABEL_SUFFIXES:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def generate_verification_token() -> str:
    """Random token published as a TXT record to prove domain control."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


class DomainValidator:
    """
    Validates and normalizes domain names.

    Handles:
    - Conversion to the canonical registry key
    - IDNA encoding for international characters
    - Rejection of forbidden characters and malformed labels
    - Length limits (253 total, 63 per label)
    """

    def validate(self, raw_domain: str) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with validation status and canonical form or error
        """
        if not raw_domain or not isinstance(raw_domain, str) or not raw_domain.strip():
            return DomainValidationResult(False, None, "Domain is required")

        domain = normalize_domain(raw_domain)
        if not domain:
            return DomainValidationResult(False, None, "Domain is required")

        if FORBIDDEN_CHARS_PATTERN.search(domain):
            return DomainValidationResult(False, None, "Domain contains forbidden characters")

        try:
            canonical = self.to_ascii(domain)
        except ValidationError as e:
            return DomainValidationResult(False, None, e.message)

        if not DOMAIN_PATTERN.match(canonical):
            return DomainValidationResult(False, None, "Invalid domain format")

        return DomainValidationResult(True, canonical, None)

    def require_valid(self, raw_domain: str) -> str:
        """
        Return the canonical domain or raise.

        Raises:
            ValidationError: If the domain is malformed
        """
        result = self.validate(raw_domain)
        if not result.valid:
            raise ValidationError(
                code="invalid_domain",
                message=result.error or "Invalid domain format",
                details={"domain": raw_domain},
            )
        return result.canonical_domain

    def to_ascii(self, domain: str) -> str:
        """
        IDNA-encode a domain with non-ASCII labels.

        Raises:
            ValidationError: If IDNA encoding fails
        """
        if all(ord(c) < 128 for c in domain):
            return domain
        try:
            return idna.encode(domain, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code="idna_error",
                message=f"IDNA encoding failed: {e}",
                details={"domain": domain},
            )
