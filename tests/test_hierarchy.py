"""Tests for SLA hierarchy resolution."""

import pytest

from inbox_sla.config import SLASource, VALID_CHANNEL_TYPES
from inbox_sla.core import AssignmentConflictException, PolicyNotFoundException
from inbox_sla.sla.domain import PolicySnapshot, select_tenant_default

from conftest import TENANT, make_policy


@pytest.fixture
def configured(policy_store):
    """Tenant with local, channel and default policies."""
    policy_store.add_policy(make_policy("local-sla", response_time_minutes=15))
    policy_store.add_policy(make_policy("channel-sla", response_time_minutes=30))
    policy_store.add_policy(make_policy("default-sla", response_time_minutes=60, is_default=True))
    policy_store.assign_local("downtown", "local-sla")
    policy_store.assign_channel("WHATSAPP", "channel-sla")
    return policy_store


class TestResolve:
    """Precedence local -> channel -> tenant -> none."""

    async def test_local_wins(self, configured, resolver):
        effective = await resolver.resolve(TENANT, "downtown", "WHATSAPP")
        assert effective.sla_id == "local-sla"
        assert effective.source == SLASource.LOCAL

    async def test_channel_when_local_unassigned(self, configured, resolver):
        effective = await resolver.resolve(TENANT, "uptown", "WHATSAPP")
        assert effective.sla_id == "channel-sla"
        assert effective.source == SLASource.CHANNEL

    async def test_tenant_default_as_fallback(self, configured, resolver):
        effective = await resolver.resolve(TENANT, "uptown", "INSTAGRAM")
        assert effective.sla_id == "default-sla"
        assert effective.source == SLASource.TENANT

    async def test_none_when_nothing_configured(self, resolver):
        effective = await resolver.resolve(TENANT, "uptown", "INSTAGRAM")
        assert not effective.applies
        assert effective.source == SLASource.NONE
        assert effective.sla_id is None

    async def test_inactive_local_policy_falls_through(self, configured, resolver):
        configured.policies[0].is_active = False
        effective = await resolver.resolve(TENANT, "downtown", "WHATSAPP")
        assert effective.source == SLASource.CHANNEL

    async def test_explicitly_unset_local_falls_through(self, configured, resolver):
        configured.assign_local("uptown", None)
        effective = await resolver.resolve(TENANT, "uptown", "WHATSAPP")
        assert effective.source == SLASource.CHANNEL

    async def test_foreign_policy_is_ignored(self, configured, resolver):
        configured.add_policy(make_policy("other-tenant", tenant_id="globex"))
        configured.assign_local("midtown", "other-tenant")
        effective = await resolver.resolve(TENANT, "midtown", None)
        assert effective.sla_id == "default-sla"

    async def test_single_active_policy_is_implicit_default(self, policy_store, resolver):
        policy_store.add_policy(make_policy("only"))
        effective = await resolver.resolve(TENANT)
        assert effective.sla_id == "only"
        assert effective.source == SLASource.TENANT

    async def test_several_unflagged_policies_give_no_default(self, policy_store, resolver):
        policy_store.add_policy(make_policy("a"))
        policy_store.add_policy(make_policy("b"))
        effective = await resolver.resolve(TENANT)
        assert effective.source == SLASource.NONE

    async def test_several_defaults_conflict(self, policy_store, resolver):
        policy_store.add_policy(make_policy("a", is_default=True))
        policy_store.add_policy(make_policy("b", is_default=True))
        with pytest.raises(AssignmentConflictException):
            await resolver.resolve(TENANT)

    async def test_snapshot_agrees_with_point_lookups(self, configured, resolver):
        snapshot = await resolver.snapshot(TENANT)
        for local_id in ("downtown", "uptown", None):
            for channel in VALID_CHANNEL_TYPES + [None]:
                assert snapshot.resolve(local_id, channel) == await resolver.resolve(TENANT, local_id, channel)


class TestPolicySnapshot:
    """Tests for the in-memory snapshot."""

    def test_build_drops_inactive_and_foreign(self):
        snapshot = PolicySnapshot.build(TENANT, [
            make_policy("active"),
            make_policy("inactive", is_active=False),
            make_policy("foreign", tenant_id="globex"),
        ])
        assert list(snapshot.policies) == ["active"]

    def test_tenant_default_is_cached(self, caplog):
        snapshot = PolicySnapshot.build(TENANT, [make_policy("a"), make_policy("b")])
        with caplog.at_level("WARNING"):
            for _ in range(5):
                assert snapshot.tenant_policy() is None
        assert len([r for r in caplog.records if "No default SLA policy" in r.getMessage()]) == 1

    def test_select_tenant_default_ignores_inactive_defaults(self):
        policies = [
            make_policy("old", is_default=True, is_active=False),
            make_policy("new", is_default=True),
        ]
        assert select_tenant_default(TENANT, policies).id == "new"


class TestExplainAndValidate:
    """Tests for explain, validate_applicability and simulate."""

    async def test_explain_lists_each_level(self, configured, resolver):
        explanation = await resolver.explain(TENANT, "downtown", "WHATSAPP")
        assert explanation.effective.sla_id == "local-sla"
        assert explanation.local.sla_id == "local-sla"
        assert explanation.channel.sla_id == "channel-sla"
        assert explanation.tenant.sla_id == "default-sla"
        assert "optimal" in explanation.recommendations[0]

    async def test_explain_flags_dangling_local(self, configured, resolver):
        configured.assign_local("uptown", "deleted-sla")
        explanation = await resolver.explain(TENANT, "uptown", "INSTAGRAM")
        assert explanation.effective.source == SLASource.TENANT
        assert explanation.local is None
        assert any("not in use" in r for r in explanation.recommendations)

    async def test_explain_without_configuration(self, resolver):
        explanation = await resolver.explain(TENANT)
        assert explanation.effective.source == SLASource.NONE
        assert "No SLA configured" in explanation.recommendations[0]

    async def test_applicable(self, configured, resolver):
        result = await resolver.validate_applicability("local-sla", TENANT, "downtown", "WHATSAPP")
        assert result.is_applicable
        assert result.reason is None

    async def test_shadowed_policy_not_applicable(self, configured, resolver):
        result = await resolver.validate_applicability("default-sla", TENANT, "downtown", "WHATSAPP")
        assert not result.is_applicable
        assert result.effective.sla_id == "local-sla"
        assert "local" in result.reason

    async def test_inactive_policy_not_applicable(self, configured, resolver):
        configured.add_policy(make_policy("retired", is_active=False))
        result = await resolver.validate_applicability("retired", TENANT)
        assert not result.is_applicable
        assert result.reason == "SLA policy is inactive"

    async def test_foreign_policy_not_applicable(self, configured, resolver):
        configured.add_policy(make_policy("theirs", tenant_id="globex"))
        result = await resolver.validate_applicability("theirs", TENANT)
        assert not result.is_applicable
        assert "another tenant" in result.reason

    async def test_unknown_policy_raises(self, resolver):
        with pytest.raises(PolicyNotFoundException):
            await resolver.validate_applicability("missing", TENANT)

    async def test_simulate_covers_every_context(self, configured, resolver):
        configured.assign_local("uptown", None)
        simulation = await resolver.simulate(TENANT)

        # tenant + channels + locals + first local/channel combination
        assert len(simulation.entries) == 1 + len(VALID_CHANNEL_TYPES) + 2 + 1
        assert simulation.sources[SLASource.LOCAL] == 2
        assert simulation.sources[SLASource.CHANNEL] == 1
        assert simulation.unique_slas == 3
