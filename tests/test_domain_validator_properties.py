"""
Property-based tests for domain validation module.

Uses Hypothesis for property-based testing to verify normalization,
rejection of malformed names, registrable roots and verification tokens.
"""

import string

import idna
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_lifecycle.domain_validator import (
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
    DomainValidator,
    generate_verification_token,
    normalize_domain,
    registrable_root,
)
from domain_lifecycle.exceptions import ValidationError

from fakes import domain_label, domain_names


IDN_LABELS = ["münchen", "bücher", "españa", "café", "straße", "zürich"]
FORBIDDEN = list("!@$%^&*()+=[]{}|\\;\"'<>,`~_ ")


@st.composite
def decorated_domain(draw) -> tuple[str, str]:
    """A canonical domain and the same domain the way a user might type it."""
    domain = draw(domain_names())
    scheme = draw(st.sampled_from(["", "http://", "https://", "HTTPS://"]))
    www = draw(st.sampled_from(["", "www.", "WWW."]))
    port = draw(st.sampled_from(["", ":443", ":8080"]))
    path = draw(st.sampled_from(["", "/", "/path", "/a/b?x=1", "#top"]))
    dot = draw(st.sampled_from(["", "."]))
    body = draw(st.sampled_from([domain, domain.upper(), domain.title()]))
    padding = draw(st.sampled_from(["", " ", "\t"]))
    return domain, f"{padding}{scheme}{www}{body}{dot}{port}{path}{padding}"


class TestDomainNormalizationProperty:
    """
    Property-based tests for domain normalization.

    **Feature: domain-lifecycle, Property 1: Normalization is idempotent and yields the registry key**
    """

    @given(raw=st.text(alphabet=string.printable, max_size=60))
    @settings(max_examples=100)
    def test_normalization_is_idempotent(self, raw: str) -> None:
        """Normalizing twice gives the same result as normalizing once."""
        once = normalize_domain(raw)
        assert normalize_domain(once) == once

    @given(case=decorated_domain())
    @settings(max_examples=100)
    def test_decorations_are_stripped(self, case: tuple[str, str]) -> None:
        """Scheme, www, port, path, trailing dot and case never reach the key."""
        domain, typed = case
        validator = DomainValidator()

        result = validator.validate(typed)

        assert result.valid, result.error
        assert result.canonical_domain == domain
        assert validator.require_valid(typed) == domain

    @given(case=decorated_domain())
    @settings(max_examples=100)
    def test_canonical_domain_is_lowercase(self, case: tuple[str, str]) -> None:
        _, typed = case
        canonical = DomainValidator().require_valid(typed)
        assert canonical == canonical.lower()
        assert not canonical.startswith("www.")

    @given(
        label=st.sampled_from(IDN_LABELS),
        tld=st.sampled_from(["de", "com", "es"]),
    )
    @settings(max_examples=50)
    def test_idn_produces_punycode(self, label: str, tld: str) -> None:
        """International labels are stored IDNA-encoded."""
        domain = f"{label}.{tld}"
        result = DomainValidator().validate(domain)

        assert result.valid, result.error
        assert result.canonical_domain == idna.encode(domain, uts46=True).decode("ascii")
        assert result.canonical_domain.startswith("xn--")


class TestInvalidDomainProperty:
    """
    Property-based tests for rejection of malformed domains.

    **Feature: domain-lifecycle, Property 2: Malformed domains are rejected**
    """

    @given(
        label=domain_label(),
        tld=st.sampled_from(["com", "net", "io"]),
        char=st.sampled_from(FORBIDDEN),
        position=st.integers(min_value=0, max_value=12),
    )
    @settings(max_examples=100)
    def test_forbidden_chars_cause_rejection(self, label: str, tld: str, char: str, position: int) -> None:
        index = min(position, len(label))
        domain = f"a{label[:index]}{char}{label[index:]}x.{tld}"

        result = DomainValidator().validate(domain)

        assert not result.valid
        assert result.canonical_domain is None
        assert result.error

    @given(label=domain_label())
    @settings(max_examples=100)
    def test_single_label_rejected(self, label: str) -> None:
        """A name without a TLD is not a domain."""
        assert not DomainValidator().validate(label).valid

    @given(label=domain_label(), tld=st.integers(min_value=0, max_value=999))
    @settings(max_examples=100)
    def test_numeric_tld_rejected(self, label: str, tld: int) -> None:
        assert not DomainValidator().validate(f"{label}.{tld}").valid

    @given(raw=st.sampled_from(["", "   ", "\t\n", "https://", "http:///path"]))
    @settings(max_examples=20)
    def test_empty_input_rejected(self, raw: str) -> None:
        result = DomainValidator().validate(raw)
        assert not result.valid
        assert result.error == "Domain is required"

    @given(label=st.text(alphabet=string.ascii_lowercase, min_size=64, max_size=80))
    @settings(max_examples=50)
    def test_overlong_label_rejected(self, label: str) -> None:
        assert not DomainValidator().validate(f"{label}.com").valid

    def test_require_valid_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            DomainValidator().require_valid("not a domain")
        assert exc_info.value.code == "invalid_domain"
        assert exc_info.value.kind == "invalid-argument"


class TestRegistrableRootProperty:
    """
    Property-based tests for registrable root derivation.

    **Feature: domain-lifecycle, Property 3: Subdomains resolve to their registrable root**
    """

    @given(
        subdomains=st.lists(domain_label(), min_size=1, max_size=3),
        domain=domain_names(),
    )
    @settings(max_examples=100)
    def test_subdomains_are_stripped(self, subdomains: list[str], domain: str) -> None:
        hostname = ".".join(subdomains + [domain])
        assert registrable_root(hostname) == domain

    @given(
        subdomains=st.lists(domain_label(), min_size=0, max_size=2),
        label=domain_label(),
        suffix=st.sampled_from(["co.uk", "com.au", "com.br", "co.jp"]),
    )
    @settings(max_examples=100)
    def test_multi_label_suffix_keeps_three_labels(self, subdomains: list[str], label: str, suffix: str) -> None:
        hostname = ".".join(subdomains + [label, suffix])
        assert registrable_root(hostname) == f"{label}.{suffix}"

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_root_of_root_is_itself(self, domain: str) -> None:
        assert registrable_root(domain) == domain


class TestVerificationTokenProperty:
    """Verification tokens are random, fixed-length and DNS-safe."""

    @given(count=st.integers(min_value=2, max_value=30))
    @settings(max_examples=50)
    def test_tokens_are_unique_and_well_formed(self, count: int) -> None:
        tokens = [generate_verification_token() for _ in range(count)]

        assert len(set(tokens)) == count
        for token in tokens:
            assert len(token) == TOKEN_LENGTH
            assert set(token) <= set(TOKEN_ALPHABET)
