"""Tests for the Reconciler facade.

End-to-end runs over the EKS example declaration plus refresh and destroy.
"""

from unittest.mock import AsyncMock, patch

import pytest
from infralayer.core.errors import CycleError, ProviderError
from infralayer.declarations import load_declarations
from infralayer.execution import EntryStatus
from infralayer.planning import Action
from infralayer.providers import InMemoryCloudProvider
from infralayer.reconciler import Reconciler, apply, plan
from infralayer.resources import Ref, ResourceDeclaration
from infralayer.resources.models import Address
from infralayer.state import InMemoryStateStore, JsonStateStore


@pytest.fixture
def reconciler(provider, store, settings):
    return Reconciler(provider, store, settings)


class TestPlanAndApply:
    """Tests for plan/apply round trips."""

    @pytest.mark.asyncio
    async def test_apply_then_plan_is_noop(self, reconciler, network):
        result = await reconciler.apply(await reconciler.plan(network()))
        assert result.success

        again = await reconciler.plan(network())

        assert not again.has_changes

    @pytest.mark.asyncio
    async def test_cycle_raises_before_any_provider_call(self, reconciler, provider):
        declarations = [
            ResourceDeclaration("thing", "a", {"peer": Ref("thing.b", "id")}),
            ResourceDeclaration("thing", "b", {"peer": Ref("thing.a", "id")}),
        ]
        with pytest.raises(CycleError):
            await reconciler.plan(declarations)

        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_module_level_entry_points(self, provider, store, settings, network):
        p = plan(network(), await store.load(), provider)
        result = await apply(p, provider, store, settings)

        assert result.success
        assert len(await store.load()) == 6

    @pytest.mark.asyncio
    async def test_json_state_round_trip_stays_noop(self, provider, settings, network, tmp_path):
        path = tmp_path / "state.json"
        first = Reconciler(provider, JsonStateStore(path), settings)
        await first.apply(await first.plan(network()))

        second = Reconciler(provider, JsonStateStore(path), settings)
        p = await second.plan(network())

        assert not p.has_changes


class TestEksExample:
    """End-to-end tests over examples/eks_cluster.yaml."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, reconciler, provider, eks_declaration_path):
        declarations = load_declarations(eks_declaration_path)

        created = await reconciler.apply(await reconciler.plan(declarations))
        assert created.success, created.failed
        assert len(created.applied) == 17
        assert len(provider.objects) == 17

        assert not (await reconciler.plan(declarations)).has_changes

        destroyed = await reconciler.apply(await reconciler.destroy_plan())
        assert destroyed.success, destroyed.failed
        assert provider.objects == {}
        assert await reconciler.store.load() == {}

    @pytest.mark.asyncio
    async def test_cluster_wired_to_network(self, reconciler, eks_declaration_path):
        declarations = load_declarations(eks_declaration_path)
        await reconciler.apply(await reconciler.plan(declarations))
        state = await reconciler.store.load()

        cluster = state[Address("aws_eks_cluster", "main")]
        subnets = [state[Address("aws_subnet", "public", i)].provider_id for i in range(2)]
        role = state[Address("aws_iam_role", "cluster")]

        assert cluster.attribute_snapshot["vpc_config"]["subnet_ids"] == subnets
        assert cluster.attribute_snapshot["role_arn"] == role.outputs["arn"]
        group = state[Address("aws_eks_node_group", "default")]
        assert group.provider_id == "demo-eks:demo-default"

    @pytest.mark.asyncio
    async def test_sequential_and_parallel_reach_same_state(self, settings, eks_declaration_path):
        declarations = load_declarations(eks_declaration_path)
        shapes = []
        for parallelism in (1, 8):
            provider = InMemoryCloudProvider()
            store = InMemoryStateStore()
            reconciler = Reconciler(
                provider, store, settings.model_copy(update={"max_parallelism": parallelism})
            )
            result = await reconciler.apply(await reconciler.plan(declarations))
            assert result.success
            records = await store.load()
            shapes.append({str(a): (r.kind, r.dependencies) for a, r in records.items()})

        assert shapes[0] == shapes[1]


class TestReplaceRequired:
    """Tests for replacements the provider only reports during apply."""

    @pytest.mark.asyncio
    async def test_unsupported_update_with_dependents_converges(
        self, reconciler, provider, network
    ):
        vpc = Address("aws_vpc", "main")
        await reconciler.apply(await reconciler.plan(network()))
        before = await reconciler.store.load()
        provider.unsupported_updates.add("aws_vpc")
        start = len(provider.calls)
        tagged = network(vpc_tags={"Name": "demo"})

        p = await reconciler.plan(tagged)
        result = await reconciler.apply(p)

        assert p.actions()[0] == ("aws_vpc.main", Action.UPDATE)
        assert result.success, result.failed
        assert result.outcome_for(vpc, Action.DELETE).status is EntryStatus.APPLIED

        calls = [
            (op, kind) for op, kind, _ in provider.calls[start:] if op in ("create", "delete")
        ]
        vpc_delete = calls.index(("delete", "aws_vpc"))
        vpc_create = calls.index(("create", "aws_vpc"))
        assert len(calls) == 12
        others = [(i, op) for i, (op, kind) in enumerate(calls) if kind != "aws_vpc"]
        assert all(i < vpc_delete for i, op in others if op == "delete")
        assert all(i > vpc_create for i, op in others if op == "create")

        state = await reconciler.store.load()
        assert state[vpc].provider_id != before[vpc].provider_id
        assert state[vpc].attribute_snapshot["tags"] == {"Name": "demo"}
        assert not (await reconciler.plan(tagged)).has_changes


class TestRefresh:
    """Tests for refresh."""

    @pytest.mark.asyncio
    async def test_unchanged(self, reconciler, network):
        await reconciler.apply(await reconciler.plan(network()))

        result = await reconciler.refresh()

        assert len(result.unchanged) == 6
        assert not result.drifted

    @pytest.mark.asyncio
    async def test_vanished_resource_removed_and_recreated(self, reconciler, provider, network):
        await reconciler.apply(await reconciler.plan(network()))
        state = await reconciler.store.load()
        subnet = Address("aws_subnet", "public", 1)
        provider.forget(state[subnet].provider_id)

        result = await reconciler.refresh()
        p = await reconciler.plan(network())

        assert result.removed == ["aws_subnet.public[1]"]
        assert subnet not in await reconciler.store.load()
        assert (subnet, Action.CREATE) in [(e.address, e.action) for e in p.changes]

        applied = await reconciler.apply(p)
        assert applied.success, applied.failed
        assert not (await reconciler.plan(network())).has_changes

    @pytest.mark.asyncio
    async def test_changed_outputs_refreshed_without_touching_hash(
        self, reconciler, provider, network
    ):
        await reconciler.apply(await reconciler.plan(network()))
        vpc = Address("aws_vpc", "main")
        before = (await reconciler.store.load())[vpc]
        provider.objects[before.provider_id].outputs["state"] = "available"

        result = await reconciler.refresh()
        after = (await reconciler.store.load())[vpc]

        assert result.refreshed == ["aws_vpc.main"]
        assert after.outputs["state"] == "available"
        assert after.last_applied_hash == before.last_applied_hash
        assert not (await reconciler.plan(network())).has_changes

    @pytest.mark.asyncio
    async def test_refresh_never_changes_infrastructure(self, reconciler, provider, network):
        await reconciler.apply(await reconciler.plan(network()))
        mutating = [c for c in provider.calls if c[0] != "read"]

        await reconciler.refresh()

        assert [c for c in provider.calls if c[0] != "read"] == mutating

    @pytest.mark.asyncio
    async def test_provider_errors_other_than_not_found_propagate(
        self, reconciler, provider, network
    ):
        await reconciler.apply(await reconciler.plan(network()))
        before = await reconciler.store.load()

        with patch.object(provider, "read", AsyncMock(side_effect=ProviderError("throttled"))):
            with pytest.raises(ProviderError, match="throttled"):
                await reconciler.refresh()

        assert await reconciler.store.load() == before
