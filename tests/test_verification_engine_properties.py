"""
Property-based tests for the Verification Engine.

Uses Hypothesis to check the two verification rules against an in-memory
resolver: root domains need A OR CNAME, portal domains need CNAME AND TXT.
"""

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_lifecycle.enums import RecordType
from domain_lifecycle.verification_engine import VerificationEngine

from fakes import INGRESS, FakeDNSProvider, FakeResolver, domain_names


TOKEN = "abc123token"
FOREIGN_IPS = ["1.2.3.4", "93.184.216.34", "10.0.0.1"]
FOREIGN_HOSTS = ["elsewhere.example.net", "parking.registrar.test"]


def make_engine() -> tuple[VerificationEngine, FakeResolver]:
    resolver = FakeResolver()
    return VerificationEngine(resolver, INGRESS), resolver


class TestRootVerificationProperty:
    """
    Property-based tests for the root-domain rule.

    **Feature: domain-lifecycle, Property 5: Root domains verify on A OR CNAME**
    """

    @given(
        domain=domain_names(),
        a_ok=st.booleans(),
        cname_ok=st.booleans(),
        txt_ok=st.booleans(),
    )
    @settings(max_examples=100)
    def test_verified_iff_a_or_cname(self, domain: str, a_ok: bool, cname_ok: bool, txt_ok: bool) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.A, INGRESS.a_record_ips[1] if a_ok else FOREIGN_IPS[0])
        if cname_ok:
            resolver.point_www_at_ingress(domain)
        if txt_ok:
            resolver.publish(engine.txt_host(domain), RecordType.TXT, TOKEN)

        result = asyncio.run(engine.verify_root(domain, TOKEN))

        assert result.verified == (a_ok or cname_ok)
        assert result.a_check.verified == a_ok
        assert result.cname_check.verified == cname_ok
        assert result.txt_check.verified == txt_ok

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_nothing_published_is_unverified_not_error(self, domain: str) -> None:
        """A record that has not propagated yet is just unverified."""
        engine, _ = make_engine()

        result = asyncio.run(engine.verify_root(domain, TOKEN))

        assert not result.verified
        for check in result.checks:
            assert check.found == []
            assert check.error is None

    @given(domain=domain_names(), ip=st.sampled_from(INGRESS.a_record_ips))
    @settings(max_examples=100)
    def test_any_ingress_ip_among_several_answers_verifies(self, domain: str, ip: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.A, FOREIGN_IPS[0], ip)

        result = asyncio.run(engine.verify_root(domain))

        assert result.verified
        assert result.txt_check is None

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_cname_comparison_ignores_case_and_trailing_dot(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(f"www.{domain}", RecordType.CNAME, INGRESS.cname_target.upper() + ".")

        result = asyncio.run(engine.verify_root(domain))

        assert result.verified
        assert result.cname_check.found == [INGRESS.cname_target]

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_resolver_failure_is_reported_not_raised(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.failing.add(domain)
        resolver.point_www_at_ingress(domain)

        result = asyncio.run(engine.verify_root(domain))

        assert result.verified
        assert result.a_check.error == "SERVFAIL"
        assert not result.a_check.verified

    @given(domain=domain_names())
    @settings(max_examples=50)
    def test_overrides_replace_ingress_targets(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.A, FOREIGN_IPS[2])

        result = asyncio.run(engine.verify_root(domain, expected_ips=[FOREIGN_IPS[2]]))

        assert result.verified


class TestPortalVerificationProperty:
    """
    Property-based tests for the portal-domain rule.

    **Feature: domain-lifecycle, Property 6: Portal domains verify on CNAME AND TXT**
    """

    @given(domain=domain_names(), cname_ok=st.booleans(), txt_ok=st.booleans())
    @settings(max_examples=100)
    def test_verified_iff_cname_and_txt(self, domain: str, cname_ok: bool, txt_ok: bool) -> None:
        engine, resolver = make_engine()
        if cname_ok:
            resolver.publish(domain, RecordType.CNAME, INGRESS.portal_cname_target)
        if txt_ok:
            resolver.publish(engine.portal_txt_host(domain), RecordType.TXT, TOKEN)

        result = asyncio.run(engine.verify_portal(domain, TOKEN))

        assert result.verified == (cname_ok and txt_ok)
        assert result.cname_check.verified == cname_ok
        assert result.txt_check.verified == txt_ok
        assert (result.errors == []) == result.verified

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_missing_txt_names_the_host(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.CNAME, INGRESS.portal_cname_target)

        result = asyncio.run(engine.verify_portal(domain, TOKEN))

        assert not result.verified
        assert result.errors == [f"TXT record not found at _portal-verify.{domain}"]

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_failed_lookups_are_not_reported_as_missing(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.failing.update({domain, engine.portal_txt_host(domain)})

        result = asyncio.run(engine.verify_portal(domain, TOKEN))

        assert not result.verified
        assert result.cname_check.error == "SERVFAIL"
        assert result.errors == [
            f"Could not look up CNAME record for {domain}",
            f"Could not look up TXT record at _portal-verify.{domain}",
        ]

    @given(domain=domain_names(), other=st.sampled_from(FOREIGN_HOSTS))
    @settings(max_examples=100)
    def test_wrong_cname_reports_actual_target(self, domain: str, other: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.CNAME, other)
        resolver.publish(engine.portal_txt_host(domain), RecordType.TXT, TOKEN)

        result = asyncio.run(engine.verify_portal(domain, TOKEN))

        assert not result.verified
        assert result.errors == [f"CNAME record points to {other}, expected {INGRESS.portal_cname_target}"]

    @given(domain=domain_names())
    @settings(max_examples=100)
    def test_wrong_token_is_a_mismatch(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.CNAME, INGRESS.portal_cname_target)
        resolver.publish(engine.portal_txt_host(domain), RecordType.TXT, "somebody-elses-token")

        result = asyncio.run(engine.verify_portal(domain, TOKEN))

        assert not result.verified
        assert "does not match" in result.errors[0]

    @given(domain=domain_names())
    @settings(max_examples=50)
    def test_quoted_txt_value_matches(self, domain: str) -> None:
        engine, resolver = make_engine()
        resolver.publish(domain, RecordType.CNAME, INGRESS.portal_cname_target)
        resolver.publish(engine.portal_txt_host(domain), RecordType.TXT, f'"{TOKEN}"')

        assert asyncio.run(engine.verify_portal(domain, TOKEN)).verified


class TestZoneActivationProperty:
    """Zone status checks never raise."""

    @given(domain=domain_names(), active=st.booleans())
    @settings(max_examples=50)
    def test_zone_active_follows_provider(self, domain: str, active: bool) -> None:
        engine, _ = make_engine()
        dns = FakeDNSProvider()

        async def run_test() -> bool:
            zone = await dns.create_or_get_zone(domain)
            if active:
                dns.activate(domain)
            return await engine.check_zone_active(dns, zone.zone_id)

        assert asyncio.run(run_test()) == active

    def test_unknown_zone_is_inactive(self) -> None:
        engine, _ = make_engine()
        assert asyncio.run(engine.check_zone_active(FakeDNSProvider(), "missing-zone")) is False
