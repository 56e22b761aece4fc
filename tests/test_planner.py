"""Tests for the planner.

Covers create ordering for a fresh graph, no-op detection after apply,
orphan deletion order, replacement cascades and destroy plans.
"""

import pytest
from infralayer.core.errors import CycleError
from infralayer.execution import Executor
from infralayer.graph import UNKNOWN
from infralayer.planning import Action, Planner, Reason, desired_hash, plan
from infralayer.planning.planner import UNKNOWN_MARKER, changed_attributes
from infralayer.resources import Ref, ResourceDeclaration
from infralayer.resources.builder import ResourceGraph, build
from infralayer.resources.models import Address


async def _apply(declarations, provider, store):
    result = await Executor(provider, store).apply(plan(build(declarations), await store.load(), provider))
    assert result.success, result.failed
    return await store.load()


def _positions(p):
    return {(str(e.address), e.action): e.position for e in p.entries}


class TestDesiredHash:
    """Tests for attribute hashing."""

    def test_key_order_does_not_matter(self):
        assert desired_hash("aws_vpc", {"a": 1, "b": {"x": 1, "y": 2}}) == desired_hash(
            "aws_vpc", {"b": {"y": 2, "x": 1}, "a": 1}
        )

    def test_kind_is_part_of_the_hash(self):
        assert desired_hash("aws_vpc", {"a": 1}) != desired_hash("aws_subnet", {"a": 1})

    def test_unknown_hashes_as_marker(self):
        assert desired_hash("t", {"a": UNKNOWN}) == desired_hash("t", {"a": UNKNOWN_MARKER})

    def test_changed_attributes(self):
        previous = {"a": 1, "b": 2, "c": 3}
        desired = {"a": 1, "b": 5, "d": 4, "e": UNKNOWN}
        assert changed_attributes(previous, desired) == ("b", "c", "d", "e")


class TestFreshPlan:
    """Tests for planning against empty state."""

    def test_creates_in_dependency_order(self, provider, network):
        p = plan(build(network()), {}, provider)

        assert p.actions() == [
            ("aws_vpc.main", Action.CREATE),
            ("aws_subnet.public[0]", Action.CREATE),
            ("aws_subnet.public[1]", Action.CREATE),
            ("aws_route_table.public", Action.CREATE),
            ("aws_route_table_association.public[0]", Action.CREATE),
            ("aws_route_table_association.public[1]", Action.CREATE),
        ]

    def test_positions_are_sequential(self, provider, network):
        p = plan(build(network()), {}, provider)
        assert [e.position for e in p.entries] == list(range(len(p)))

    def test_entry_dependencies_are_recorded(self, provider, network):
        p = plan(build(network()), {}, provider)
        assoc = p.entries_for(Address("aws_route_table_association", "public", 0))[0]

        assert p.depends_on(assoc) == {
            (Address("aws_subnet", "public", 0), Action.CREATE),
            (Address("aws_route_table", "public"), Action.CREATE),
        }

    def test_summary(self, provider, network):
        p = plan(build(network()), {}, provider)

        assert p.summary() == {"create": 6, "update": 0, "delete": 0, "noop": 0, "replace": 0}
        assert p.has_changes

    def test_to_dict(self, provider, network):
        data = plan(build(network()), {}, provider).to_dict()

        assert data["entries"][0] == {"address": "aws_vpc.main", "action": "create", "position": 0}
        assert data["has_changes"] is True

    def test_empty_graph_and_state(self, provider):
        p = plan(ResourceGraph.empty(), {}, provider)
        assert len(p) == 0
        assert not p.has_changes


class TestPlanAgainstState:
    """Tests for planning after an apply."""

    @pytest.mark.asyncio
    async def test_apply_then_plan_is_all_noop(self, provider, store, network):
        state = await _apply(network(), provider, store)

        p = plan(build(network()), state, provider)

        assert {e.action for e in p.entries} == {Action.NOOP}
        assert not p.has_changes

    @pytest.mark.asyncio
    async def test_plan_does_not_mutate_state(self, provider, store, network):
        state = await _apply(network(), provider, store)
        snapshot = dict(state)

        plan(build(network(vpc_cidr="10.1.0.0/16")), state, provider)

        assert state == snapshot

    @pytest.mark.asyncio
    async def test_mutable_change_is_update(self, provider, store, network):
        state = await _apply(network(), provider, store)
        declarations = network()
        declarations[0] = ResourceDeclaration(
            "aws_vpc", "main", {"cidr_block": "10.0.0.0/16", "tags": {"Name": "demo"}}
        )

        p = plan(build(declarations), state, provider)

        assert [(str(e.address), e.action, e.changed) for e in p.changes] == [
            ("aws_vpc.main", Action.UPDATE, ("tags",))
        ]

    @pytest.mark.asyncio
    async def test_removed_subnet_deletes_association_first(self, provider, store, network):
        state = await _apply(network(subnets=2), provider, store)

        p = plan(build(network(subnets=1)), state, provider)

        assert [(str(e.address), e.action) for e in p.changes] == [
            ("aws_route_table_association.public[1]", Action.DELETE),
            ("aws_subnet.public[1]", Action.DELETE),
        ]
        assert all(e.reason is Reason.ORPHAN for e in p.changes)

    @pytest.mark.asyncio
    async def test_vpc_cidr_change_replaces_vpc_and_dependents(self, provider, store, network):
        state = await _apply(network(), provider, store)

        p = plan(build(network(vpc_cidr="10.1.0.0/16")), state, provider)
        pos = _positions(p)
        deletes = [e for e in p.entries if e.action is Action.DELETE]
        creates = [e for e in p.entries if e.action is Action.CREATE]

        assert len(deletes) == 6 and len(creates) == 6
        assert max(e.position for e in deletes) < min(e.position for e in creates)

        vpc = p.entries_for(Address("aws_vpc", "main"))
        assert {e.reason for e in vpc} == {Reason.REPLACE}
        assert [e.changed for e in vpc if e.action is Action.CREATE] == [("cidr_block",)]
        others = [e for e in p.entries if e.address.kind != "aws_vpc"]
        assert {e.reason for e in others} == {Reason.DEPENDENCY_REPLACED}

        # Dependents are deleted before what they depend on
        assoc0 = ("aws_route_table_association.public[0]", Action.DELETE)
        assert pos[assoc0] < pos[("aws_subnet.public[0]", Action.DELETE)]
        assert pos[assoc0] < pos[("aws_route_table.public", Action.DELETE)]
        assert pos[("aws_subnet.public[1]", Action.DELETE)] < pos[("aws_vpc.main", Action.DELETE)]
        assert pos[("aws_route_table.public", Action.DELETE)] < pos[("aws_vpc.main", Action.DELETE)]

        # And recreated in declaration order
        assert [str(e.address) for e in creates] == [
            "aws_vpc.main",
            "aws_subnet.public[0]",
            "aws_subnet.public[1]",
            "aws_route_table.public",
            "aws_route_table_association.public[0]",
            "aws_route_table_association.public[1]",
        ]
        assert p.summary()["replace"] == 6

    @pytest.mark.asyncio
    async def test_force_replace_cascades_without_attribute_changes(
        self, provider, store, network
    ):
        state = await _apply(network(), provider, store)

        p = plan(build(network()), state, provider, force_replace={Address("aws_vpc", "main")})
        pos = _positions(p)

        vpc = p.entries_for(Address("aws_vpc", "main"))
        assert {(e.action, e.reason) for e in vpc} == {
            (Action.DELETE, Reason.REPLACE),
            (Action.CREATE, Reason.REPLACE),
        }
        assert p.summary()["replace"] == 6
        assert pos[("aws_subnet.public[0]", Action.DELETE)] < pos[("aws_vpc.main", Action.DELETE)]
        assert pos[("aws_vpc.main", Action.DELETE)] < pos[("aws_vpc.main", Action.CREATE)]
        assert pos[("aws_vpc.main", Action.CREATE)] < pos[("aws_subnet.public[0]", Action.CREATE)]

    def test_plan_keeps_its_graph(self, provider, network):
        graph = build(network())
        assert plan(graph, {}, provider).graph is graph

    @pytest.mark.asyncio
    async def test_immutable_change_on_leaf_replaces_only_leaf(self, provider, store, network):
        state = await _apply(network(), provider, store)
        declarations = network()
        declarations[1] = ResourceDeclaration(
            "aws_subnet",
            "public",
            {
                "vpc_id": Ref("aws_vpc.main", "id"),
                "cidr_block": declarations[1].attributes["cidr_block"],
                "availability_zone": "us-east-1a",
            },
            count=2,
        )

        p = plan(build(declarations), state, provider)
        replaced = {str(e.address) for e in p.changes}

        assert replaced == {
            "aws_subnet.public[0]",
            "aws_subnet.public[1]",
            "aws_route_table_association.public[0]",
            "aws_route_table_association.public[1]",
        }

    @pytest.mark.asyncio
    async def test_orphan_deleted_after_surviving_dependent_moves(self, provider, store):
        """A resource that stops referencing an orphan is updated before the orphan goes."""
        before = [
            ResourceDeclaration("aws_vpc", "old", {"cidr_block": "10.0.0.0/16"}),
            ResourceDeclaration("aws_vpc", "new", {"cidr_block": "10.1.0.0/16"}),
            ResourceDeclaration("aws_internet_gateway", "main", {"vpc_id": Ref("aws_vpc.old", "id")}),
        ]
        after = [
            before[1],
            ResourceDeclaration("aws_internet_gateway", "main", {"vpc_id": Ref("aws_vpc.new", "id")}),
        ]
        state = await _apply(before, provider, store)

        p = plan(build(after), state, provider)
        pos = _positions(p)

        assert pos[("aws_internet_gateway.main", Action.UPDATE)] < pos[("aws_vpc.old", Action.DELETE)]

    @pytest.mark.asyncio
    async def test_destroy_plan_is_reverse_dependency_order(self, provider, store, network):
        state = await _apply(network(), provider, store)

        p = plan(ResourceGraph.empty(), state, provider)
        pos = _positions(p)

        assert {e.action for e in p.entries} == {Action.DELETE}
        assert len(p) == 6
        for address, record in state.items():
            for dep in record.dependencies:
                assert pos[(str(address), Action.DELETE)] < pos[(str(dep), Action.DELETE)]

    @pytest.mark.asyncio
    async def test_new_resource_referencing_existing_one(self, provider, store, network):
        state = await _apply(network(), provider, store)
        declarations = network() + [
            ResourceDeclaration("aws_internet_gateway", "main", {"vpc_id": Ref("aws_vpc.main", "id")})
        ]

        p = plan(build(declarations), state, provider)

        assert [(str(e.address), e.action) for e in p.changes] == [
            ("aws_internet_gateway.main", Action.CREATE)
        ]


class TestPlannerErrors:
    """Tests for planning failures."""

    def test_cycle_aborts_planning(self, provider):
        declarations = [
            ResourceDeclaration("thing", "a", {"peer": Ref("thing.b", "id")}),
            ResourceDeclaration("thing", "b", {"peer": Ref("thing.a", "id")}),
        ]
        with pytest.raises(CycleError):
            plan(build(declarations), {}, provider)

    def test_planner_uses_provider_replacement_rules(self, provider):
        planner = Planner(provider)
        assert planner.plan(ResourceGraph.empty(), {}).entries == []
