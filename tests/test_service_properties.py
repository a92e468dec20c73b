"""
Property-based tests for the RPC boundary.

Checks authentication, ownership and argument validation on every call,
the purchase and portal flows end to end, and the error payloads returned
by the dispatcher.
"""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_lifecycle.enums import DomainStatus, OrderStatus, RecordType
from domain_lifecycle.exceptions import (
    AuthenticationError,
    ConflictError,
    OwnershipError,
    PreconditionError,
    ValidationError,
)
from domain_lifecycle.service import CallerContext

from fakes import INGRESS, build_stack, domain_names


ALICE = CallerContext("alice")
BOB = CallerContext("bob")


def run(coro):
    return asyncio.run(coro)


class TestAuthenticationProperty:
    """
    Property-based tests for caller identity.

    **Feature: domain-lifecycle, Property 1: Every non-public call requires a caller**
    """

    @given(
        rpc=st.sampled_from([
            ("addCustomDomain", {"domain": "example.com", "project_id": "proj-alice"}),
            ("verifyDomainDNS", {"domain": "example.com"}),
            ("checkDomainSSL", {"domain": "example.com"}),
            ("removeCustomDomain", {"domain": "example.com"}),
            ("purchaseDomain", {"domain_name": "example.com"}),
            ("checkDomainOrderStatus", {"order_id": "o-1"}),
            ("listDomains", {}),
            ("addPortalDomain", {"tenant_id": "tenant-agency", "domain": "portal.example.com"}),
        ]),
        caller=st.sampled_from([None, CallerContext(), CallerContext("")]),
    )
    @settings(max_examples=50, deadline=None)
    def test_anonymous_calls_rejected(self, rpc: tuple, caller) -> None:
        stack = build_stack()
        name, params = rpc

        response = run(stack.service.handle(name, caller, **params))

        assert response["ok"] is False
        assert response["error"]["kind"] == "unauthenticated"
        assert stack.registry.all_domains() == []

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_availability_is_public(self, domain: str) -> None:
        stack = build_stack()

        response = run(stack.service.handle("checkDomainAvailability", None, domains=[domain.upper()]))

        assert response["ok"]
        assert response["result"]["results"][0]["domain_name"] == domain

    def test_direct_call_raises(self) -> None:
        stack = build_stack()
        with pytest.raises(AuthenticationError):
            run(stack.service.list_domains(None))


class TestOwnershipProperty:
    """
    Property-based tests for ownership checks.

    **Feature: domain-lifecycle, Property 2: Callers only act on what they own**
    """

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_foreign_project_rejected(self, domain: str) -> None:
        stack = build_stack()

        with pytest.raises(OwnershipError) as exc_info:
            run(stack.service.add_custom_domain(ALICE, domain, "proj-bob"))
        assert exc_info.value.code == "project_not_owned"
        assert stack.registry.get(domain) is None

    @given(
        domain=domain_names(),
        call=st.sampled_from(["verify_domain_dns", "check_domain_ssl", "remove_custom_domain", "migrate_to_dns_provider"]),
    )
    @settings(max_examples=40, deadline=None)
    def test_foreign_domain_rejected(self, domain: str, call: str) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))

        with pytest.raises(OwnershipError) as exc_info:
            run(getattr(stack.service, call)(BOB, domain))
        assert exc_info.value.code == "domain_not_owned"
        assert stack.registry.require(domain).owner_id == "alice"

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_claimed_domain_conflicts(self, domain: str) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))

        response = run(stack.service.handle("addCustomDomain", BOB, domain=domain, project_id="proj-bob"))

        assert response["error"]["kind"] == "already-exists"

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_add_is_idempotent_for_owner(self, domain: str) -> None:
        stack = build_stack()

        first = run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))
        second = run(stack.service.add_custom_domain(ALICE, f"  WWW.{domain.upper()}. ", "proj-alice"))

        assert first["verification_token"] == second["verification_token"]
        assert second["domain"] == domain
        assert [r["type"] for r in first["dns_records"]].count("TXT") == 1

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_list_domains_is_per_owner(self, domain: str) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))
        run(stack.service.add_custom_domain(BOB, f"b{domain}", "proj-bob"))

        listed = run(stack.service.list_domains(ALICE))["domains"]

        assert [d["domain"] for d in listed] == [domain]


class TestCustomDomainFlowProperty:
    """Verification, status updates and removal through the service."""

    @given(domain=domain_names(), pointed=st.booleans())
    @settings(max_examples=40, deadline=None)
    def test_verify_domain_dns(self, domain: str, pointed: bool) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))
        if pointed:
            stack.resolver.point_root_at_ingress(domain)

        response = run(stack.service.verify_domain_dns(ALICE, domain))

        record = stack.registry.require(domain)
        assert response["verified"] == pointed
        assert response["advanced"] == pointed
        assert {r["type"] for r in response["records"]} >= {"A", "CNAME", "TXT"}
        if pointed:
            assert record.status == DomainStatus.SSL_PENDING
        else:
            assert record.status == DomainStatus.PENDING
            assert record.verification_attempts == 1

    @given(domain=domain_names(), status=st.sampled_from(["active", "error"]))
    @settings(max_examples=30, deadline=None)
    def test_verify_domain_dns_does_not_count_settled_domains(self, domain: str, status: str) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))
        run(stack.service.update_domain_status(ALICE, domain, status=status))

        response = run(stack.service.verify_domain_dns(ALICE, domain))

        record = stack.registry.require(domain)
        assert not response["verified"]
        assert record.status.value == status
        assert record.verification_attempts == 0

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_status_regression_is_invalid_argument(self, domain: str) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))
        run(stack.service.update_domain_status(ALICE, domain, status="ssl_pending", ssl_status="provisioning"))

        response = run(stack.service.handle("updateDomainStatus", ALICE, domain=domain, status="pending"))

        assert response["error"]["kind"] == "invalid-argument"
        assert stack.registry.require(domain).status == DomainStatus.SSL_PENDING

    def test_unknown_status_is_invalid_argument(self) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, "example.com", "proj-alice"))

        with pytest.raises(ValidationError) as exc_info:
            run(stack.service.update_domain_status(ALICE, "example.com", status="done"))
        assert exc_info.value.code == "invalid_status"

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_setup_external_and_nameserver_check(self, domain: str) -> None:
        stack = build_stack()

        setup = run(stack.service.setup_external_domain(ALICE, domain, "proj-alice"))
        pending = run(stack.service.verify_external_domain_nameservers(ALICE, domain))
        stack.dns.activate(domain)
        active = run(stack.service.verify_external_domain_nameservers(ALICE, domain))

        assert setup["nameservers"] == stack.dns.zones[setup["zone_id"]].nameservers
        assert setup["nameservers"][0] in setup["instructions"]["step3"]
        assert pending["verified"] is False
        assert pending["status"] == "pending_nameservers"
        assert active["verified"] is True
        assert active["status"] == "active"

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_remove_then_reclaim(self, domain: str) -> None:
        stack = build_stack()
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))

        removed = run(stack.service.remove_custom_domain(ALICE, domain))
        reclaimed = run(stack.service.add_custom_domain(BOB, domain, "proj-bob"))

        assert removed["success"]
        assert reclaimed["domain"] == domain
        assert stack.registry.require(domain).owner_id == "bob"

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_sync_mapping_moves_project(self, domain: str) -> None:
        stack = build_stack()
        stack.service._policy.projects["proj-alice-2"] = "alice"
        run(stack.service.add_custom_domain(ALICE, domain, "proj-alice"))

        response = run(stack.service.sync_domain_mapping(ALICE, domain, "proj-alice-2"))

        assert response["project_id"] == "proj-alice-2"
        assert stack.registry.get_routing(domain).project_id == "proj-alice-2"


class TestPurchaseFlowProperty:
    """
    Property-based tests for buying a domain.

    **Feature: domain-lifecycle, Property 9: A completed order is never repeated**
    """

    @given(domain=domain_names(), years=st.integers(min_value=1, max_value=10))
    @settings(max_examples=30, deadline=None)
    def test_purchase_domain_completes(self, domain: str, years: int) -> None:
        stack = build_stack()

        response = run(stack.service.purchase_domain(ALICE, domain, years))

        assert response["success"]
        assert response["status"] == "completed"
        assert response["expiry_date"]
        record = stack.registry.require(domain)
        assert record.status == DomainStatus.ACTIVE
        assert record.owner_id == "alice"
        assert stack.registrar.purchases == [(domain, years)]

    @given(years=st.one_of(
        st.integers(max_value=0),
        st.integers(min_value=11),
        st.just(True),
        st.just("2"),
        st.just(1.5),
    ))
    @settings(max_examples=30, deadline=None)
    def test_invalid_years_rejected(self, years) -> None:
        stack = build_stack()

        with pytest.raises(ValidationError) as exc_info:
            run(stack.service.create_domain_order(ALICE, "example.com", years))
        assert exc_info.value.code == "invalid_years"
        assert stack.registrar.purchases == []

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_unavailable_domain_rejected(self, domain: str) -> None:
        stack = build_stack()
        stack.registrar.unavailable.add(domain)

        with pytest.raises(PreconditionError) as exc_info:
            run(stack.service.purchase_domain(ALICE, domain))
        assert exc_info.value.code == "domain_unavailable"

    @given(domain=domain_names(), deliveries=st.integers(min_value=1, max_value=4))
    @settings(max_examples=30, deadline=None)
    def test_order_then_repeated_completion(self, domain: str, deliveries: int) -> None:
        stack = build_stack()
        order = run(stack.service.create_domain_order(ALICE, domain, 2))
        assert order["status"] == OrderStatus.PENDING_PAYMENT.value
        assert order["retail_price"] == 12.0

        responses = [run(stack.service.complete_domain_order(order["order_id"])) for _ in range(deliveries)]

        assert all(r["success"] for r in responses)
        assert stack.registrar.purchases == [(domain, 2)]
        assert stack.dns.zones_created == 1

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_order_status_is_owner_only(self, domain: str) -> None:
        stack = build_stack()
        order = run(stack.service.create_domain_order(ALICE, domain, 1))

        status = run(stack.service.check_domain_order_status(ALICE, order["order_id"]))
        assert status["status"] == "pending_payment"
        assert status["domain_name"] == domain

        with pytest.raises(OwnershipError) as exc_info:
            run(stack.service.check_domain_order_status(BOB, order["order_id"]))
        assert exc_info.value.code == "order_not_owned"

    def test_unknown_order_is_not_found(self) -> None:
        stack = build_stack()
        response = run(stack.service.handle("checkDomainOrderStatus", ALICE, order_id="missing"))
        assert response["error"]["kind"] == "not-found"


class TestPortalDomainProperty:
    """
    Property-based tests for white-label portal domains.

    **Feature: domain-lifecycle, Property 7: Only eligible tenant admins attach portal domains**
    """

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_add_and_verify_portal_domain(self, domain: str) -> None:
        stack = build_stack()

        added = run(stack.service.add_portal_domain(ALICE, "tenant-agency", domain))
        cname = added["dns_records"]["cname"]
        txt = added["dns_records"]["txt"]
        assert cname["value"] == INGRESS.portal_cname_target
        assert txt["value"] == added["verification_token"]

        stack.resolver.publish(cname["name"], RecordType.CNAME, cname["value"])
        stack.resolver.publish(txt["name"], RecordType.TXT, txt["value"])
        verified = run(stack.service.verify_portal_domain(ALICE, "tenant-agency", domain))

        assert verified["verified"]
        assert verified["status"] == "active"
        assert verified["errors"] == []
        assert "tenant-agency" in stack.policy.verified_tenants

    @given(domain=domain_names())
    @settings(max_examples=30, deadline=None)
    def test_unverified_portal_reports_errors(self, domain: str) -> None:
        stack = build_stack()
        run(stack.service.add_portal_domain(ALICE, "tenant-agency", domain))

        result = run(stack.service.verify_portal_domain(ALICE, "tenant-agency", domain))

        assert not result["verified"]
        assert not result["cname_verified"]
        assert not result["txt_verified"]
        assert result["errors"]
        assert result["status"] == "verifying"
        assert stack.registry.require_portal(domain).verification_attempts == 1

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_plan_must_include_custom_domains(self, domain: str) -> None:
        stack = build_stack()

        with pytest.raises(PreconditionError) as exc_info:
            run(stack.service.add_portal_domain(ALICE, "tenant-free", domain))
        assert exc_info.value.code == "plan_not_eligible"

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_non_admin_rejected(self, domain: str) -> None:
        stack = build_stack()

        with pytest.raises(OwnershipError) as exc_info:
            run(stack.service.add_portal_domain(BOB, "tenant-agency", domain))
        assert exc_info.value.code == "tenant_permission_denied"

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_portal_domain_held_by_other_tenant(self, domain: str) -> None:
        stack = build_stack()
        stack.service._policy.tenant_admins["tenant-other"] = {"alice"}
        stack.service._policy.tenant_plans["tenant-other"] = "enterprise"
        run(stack.service.add_portal_domain(ALICE, "tenant-agency", domain))

        with pytest.raises(ConflictError):
            run(stack.service.add_portal_domain(ALICE, "tenant-other", domain))
        with pytest.raises(OwnershipError):
            run(stack.service.verify_portal_domain(ALICE, "tenant-other", domain))

    @given(domain=domain_names(), name_it=st.booleans())
    @settings(max_examples=20, deadline=None)
    def test_remove_portal_domain(self, domain: str, name_it: bool) -> None:
        stack = build_stack()
        run(stack.service.add_portal_domain(ALICE, "tenant-agency", domain))
        stack.policy.verified_tenants.add("tenant-agency")

        removed = run(stack.service.remove_portal_domain(ALICE, "tenant-agency", domain if name_it else None))

        assert removed["domain"] == domain
        assert stack.registry.get_portal(domain) is None
        assert "tenant-agency" not in stack.policy.verified_tenants
        with pytest.raises(PreconditionError) as exc_info:
            run(stack.service.remove_portal_domain(ALICE, "tenant-agency"))
        assert exc_info.value.code == "no_portal_domain"


class TestDispatchProperty:
    """
    Property-based tests for the RPC dispatcher.

    **Feature: domain-lifecycle, Property 24: Every failure maps to a stable error kind**
    """

    @given(name=st.text(alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ", min_size=1, max_size=30))
    @settings(max_examples=50, deadline=None)
    def test_unknown_method(self, name: str) -> None:
        stack = build_stack()
        if name in stack.service.RPC_METHODS:
            return

        response = run(stack.service.handle(name, ALICE))

        assert response == {"ok": False, "error": {
            "kind": "invalid-argument",
            "code": "unknown_method",
            "message": f"Unknown method: {name}",
            "details": {},
        }}

    @given(raw=st.sampled_from(["", "   ", "localhost", "exa mple.com", "bad_domain.com", "123.456"]))
    @settings(max_examples=20, deadline=None)
    def test_invalid_domain_is_invalid_argument(self, raw: str) -> None:
        stack = build_stack()

        response = run(stack.service.handle("addCustomDomain", ALICE, domain=raw, project_id="proj-alice"))

        assert response["error"]["kind"] == "invalid-argument"

    def test_bad_parameters_are_invalid_argument(self) -> None:
        stack = build_stack()

        response = run(stack.service.handle("listDomains", ALICE, unexpected=True))

        assert response["error"]["code"] == "invalid_arguments"

    def test_unexpected_errors_are_internal(self) -> None:
        stack = build_stack()
        stack.dns.fail_create = RuntimeError("socket exploded")

        response = run(stack.service.handle(
            "setupExternalDomainWithCloudflare", ALICE, domain="example.com", project_id="proj-alice",
        ))

        assert response["error"] == {"kind": "internal", "code": "internal", "message": "Internal error", "details": {}}
        failures = [e for e in stack.logger.entries if e.message == "RPC failed"]
        assert failures[0].data["error_type"] == "RuntimeError"
        assert not stack.registry.is_leased("example.com")

    @given(domain=domain_names())
    @settings(max_examples=20, deadline=None)
    def test_successful_call_wraps_result(self, domain: str) -> None:
        stack = build_stack()

        response = run(stack.service.handle("addCustomDomain", ALICE, domain=domain, project_id="proj-alice"))

        assert response["ok"]
        assert response["result"]["domain"] == domain
