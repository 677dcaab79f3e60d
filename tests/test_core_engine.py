"""
Tests for the Core Engine
=========================

Tests fragments, the graph store and the rule engine.
"""

import pytest
from pydantic import ConfigDict, ValidationError

from plantgraph.core.errors import NotFound, StructuralViolation
from plantgraph.core.graph import Graph
from plantgraph.core.node import Fragment, Node
from plantgraph.core.query import Query, apply
from plantgraph.core.rules import Rule, rewrite
from plantgraph.core.traversal import traverse_dfs
from plantgraph.platform.export import validate_topology
from plantgraph.platform.snapshot import graph_fingerprint


# =============================================================================
# Node types
# =============================================================================

class A(Node):
    pass


class B(Node):
    pass


class Tagged(Node):
    name: str = ""


class SubTagged(Tagged):
    pass


class Cell(Node):
    state: int


class Segment(Node):
    model_config = ConfigDict(frozen=True)

    length: float


def types_dfs(graph: Graph) -> list[str]:
    names: list[str] = []
    traverse_dfs(graph, lambda node: names.append(type(node).__name__))
    return names


def names_dfs(graph: Graph) -> list[str]:
    names: list[str] = []
    traverse_dfs(graph, lambda node: names.append(node.name))
    return names


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def algae() -> Graph:
    """Lindenmayer's algae: A -> A + B, B -> A."""
    return Graph(
        axiom=A(),
        rules=(
            Rule(A, rhs=lambda ctx: A() + B()),
            Rule(B, rhs=lambda ctx: A()),
        ),
    )


@pytest.fixture
def cells() -> Graph:
    """A chain of cells where each cell copies its parent's state."""

    def transfer(ctx):
        if ctx.has_parent():
            return True, (ctx.parent(),)
        return False, ()

    rule = Rule(
        Cell,
        lhs=transfer,
        rhs=lambda ctx, father: Cell(state=father.data.state),
        captures=True,
    )
    return Graph(axiom=Cell(state=1) + Cell(state=0) + Cell(state=0), rules=rule)


# =============================================================================
# Fragment Tests
# =============================================================================

class TestFragment:
    """Tests for the + / branch algebra."""

    def test_concatenation_moves_insertion_point(self):
        fragment = Tagged(name="a") + Tagged(name="b") + Tagged(name="c")
        assert len(fragment) == 3
        assert fragment.parents == (-1, 0, 1)
        assert fragment.insertion == 2

    def test_branches_keep_insertion_point(self):
        fragment = Tagged(name="a") + (Tagged(name="b"), Tagged(name="c")) + Tagged(name="d")
        assert fragment.parents == (-1, 0, 0, 0)
        assert fragment.insertion == 3
        graph = Graph(fragment)
        assert names_dfs(graph) == ["a", "b", "c", "d"]
        root_children = graph.children_ids(graph.root_id)
        assert [graph.payload(c).name for c in root_children] == ["b", "c", "d"]

    def test_branch_fragments_keep_their_shape(self):
        fragment = Tagged(name="a") + (Tagged(name="b") + Tagged(name="c"),) + Tagged(name="d")
        graph = Graph(fragment)
        root_children = graph.children_ids(graph.root_id)
        assert [graph.payload(c).name for c in root_children] == ["b", "d"]
        b_children = graph.children_ids(root_children[0])
        assert [graph.payload(c).name for c in b_children] == ["c"]

    def test_sum_builds_chain(self):
        fragment = sum(A() for _ in range(4))
        assert isinstance(fragment, Fragment)
        assert fragment.parents == (-1, 0, 1, 2)

    def test_none_is_neutral(self):
        fragment = A() + None
        assert len(fragment) == 1
        assert len(Fragment.of(None) + A()) == 1

    def test_branch_from_empty_fragment_fails(self):
        with pytest.raises(ValueError):
            Fragment() + (A(), B())

    def test_nested_branch_sequence_rejected(self):
        with pytest.raises(TypeError):
            A() + ((A(), B()),)

    def test_invalid_operand_rejected(self):
        with pytest.raises(TypeError):
            A() + "B"


# =============================================================================
# Node Tests
# =============================================================================

class TestNode:
    """Tests for node payload validation."""

    def test_fields_validated_on_construction(self):
        with pytest.raises(ValidationError):
            Cell(state="not a number")

    def test_fields_validated_on_assignment(self):
        cell = Cell(state=1)
        with pytest.raises(ValidationError):
            cell.state = "oops"

    def test_frozen_variant_is_immutable(self):
        segment = Segment(length=1.0)
        with pytest.raises(ValidationError):
            segment.length = 2.0

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            Cell(state=1, colour="red")

    def test_default_label_is_type_name(self):
        assert Cell(state=0).label() == "Cell"


# =============================================================================
# Graph Store Tests
# =============================================================================

class TestGraph:
    """Tests for building and inspecting graphs."""

    def test_build_from_single_node(self):
        graph = Graph(A())
        assert len(graph) == 1
        assert graph.parent_id(graph.root_id) is None
        assert graph.generation == 0

    def test_empty_axiom_fails(self):
        with pytest.raises(ValueError):
            Graph(Fragment())
        with pytest.raises(ValueError):
            Graph(sum([]))

    def test_every_node_has_one_parent(self):
        graph = Graph(A() + (B(), A() + B()) + A())
        validate_topology(graph)
        non_roots = [n for n in graph.node_ids() if n != graph.root_id]
        assert all(graph.parent_id(n) is not None for n in non_roots)

    def test_repeated_payload_instance_is_copied(self):
        shared = Cell(state=3)
        graph = Graph(shared + shared)
        first, second = graph.payloads()
        assert first is not second
        assert shared is not first and shared is not second
        assert first.state == second.state == 3

    def test_graphs_from_one_axiom_share_no_payloads(self):
        axiom = Cell(state=1) + Cell(state=2)
        first, second = Graph(axiom), Graph(axiom)
        for cell in apply(first, Query(Cell)):
            cell.state = cell.state * 10
        assert [c.state for c in apply(first, Query(Cell))] == [10, 20]
        assert [c.state for c in apply(second, Query(Cell))] == [1, 2]
        assert [c.state for c in axiom] == [1, 2]

    def test_rhs_constant_is_copied_per_node(self):
        template = Cell(state=0)
        graph = Graph(A() + (B(), B()), rules=Rule(B, rhs=lambda ctx: template))
        rewrite(graph)
        cells = apply(graph, Query(Cell))
        assert len(cells) == 2
        cells[0].state = 7
        assert cells[1].state == 0
        assert template.state == 0

    def test_node_id_of(self):
        graph = Graph(A() + Cell(state=1))
        cell = apply(graph, Query(Cell))[0]
        node_id = graph.node_id_of(cell)
        assert graph.payload(node_id) is cell
        assert graph.parent_id(node_id) == graph.root_id
        with pytest.raises(NotFound):
            graph.node_id_of(Cell(state=1))

    def test_unknown_id_raises_not_found(self):
        graph = Graph(A())
        with pytest.raises(NotFound):
            graph.payload(42)
        with pytest.raises(NotFound):
            graph.context(42)

    def test_prune_removes_subtree(self):
        graph = Graph(Tagged(name="root") + (Tagged(name="x") + Tagged(name="y"),) + Tagged(name="z"))
        x_id = graph.children_ids(graph.root_id)[0]
        removed = graph.prune(x_id)
        assert removed == 2
        assert names_dfs(graph) == ["root", "z"]
        validate_topology(graph)

    def test_prune_root_fails(self):
        graph = Graph(A() + B())
        with pytest.raises(StructuralViolation):
            graph.prune(graph.root_id)

    def test_copy_is_independent(self, cells):
        clone = cells.copy()
        for cell in apply(clone, Query(Cell)):
            cell.state = 9
        assert [c.state for c in apply(cells, Query(Cell))] == [1, 0, 0]
        assert len(clone.rules) == len(cells.rules)
        rewrite(clone)
        assert cells.generation == 0
        assert clone.generation == 1

    def test_graph_data_is_shared(self):
        params = {"growth": 0.1}
        graph = Graph(A(), data=params)
        assert graph.context(graph.root_id).graph_data is params

    def test_add_rule_requires_rule(self):
        graph = Graph(A())
        with pytest.raises(TypeError):
            graph.add_rule(lambda ctx: A())


# =============================================================================
# Rule Definition Tests
# =============================================================================

class TestRuleDefinition:
    """Tests for rule construction contracts."""

    def test_node_type_must_be_node_subclass(self):
        with pytest.raises(TypeError):
            Rule(int, rhs=lambda ctx: A())

    def test_captures_require_lhs(self):
        with pytest.raises(TypeError):
            Rule(A, rhs=lambda ctx: A(), captures=True)

    def test_rhs_must_be_callable(self):
        with pytest.raises(TypeError):
            Rule(A, rhs=A())

    def test_default_name(self):
        assert Rule(A, rhs=lambda ctx: None).name == "A"
        assert Rule(A, rhs=lambda ctx: None, name="grow").name == "grow"


# =============================================================================
# Rewrite Tests
# =============================================================================

class TestRewrite:
    """Tests for rewrite generations."""

    def test_algae_first_generations(self, algae):
        rewrite(algae)
        assert types_dfs(algae) == ["A", "B"]
        rewrite(algae)
        assert types_dfs(algae) == ["A", "B", "A"]
        assert algae.generation == 2

    def test_algae_follows_fibonacci(self, algae):
        sizes = [len(algae)]
        for _ in range(5):
            rewrite(algae)
            sizes.append(len(algae))
        assert sizes == [1, 2, 3, 5, 8, 13]
        validate_topology(algae)

    def test_cells_copy_parent_state_from_snapshot(self, cells):
        states: list[int] = []
        traverse_dfs(cells, lambda node: states.append(node.state))
        assert states == [1, 0, 0]

        rewrite(cells)
        states = []
        traverse_dfs(cells, lambda node: states.append(node.state))
        assert states == [1, 1, 0]

        rewrite(cells)
        states = []
        traverse_dfs(cells, lambda node: states.append(node.state))
        assert states == [1, 1, 1]

    def test_no_matching_rule_leaves_graph_unchanged(self):
        graph = Graph(
            A() + (B(), A()) + B(),
            rules=Rule(A, lhs=lambda ctx: False, rhs=lambda ctx: B()),
        )
        ids = graph.node_ids()
        before = graph_fingerprint(graph)
        report = rewrite(graph)
        assert report.replaced == 0
        assert graph.node_ids() == ids
        assert graph_fingerprint(graph) == before

    def test_rewrite_is_deterministic(self, cells):
        twin = Graph(
            axiom=Cell(state=1) + Cell(state=0) + Cell(state=0),
            rules=cells.rules,
        )
        for _ in range(3):
            rewrite(cells)
            rewrite(twin)
        assert graph_fingerprint(cells) == graph_fingerprint(twin)

    def test_rewrite_without_captures_is_deterministic(self, algae):
        twin = Graph(axiom=A(), rules=algae.rules)
        for _ in range(6):
            rewrite(algae)
            rewrite(twin)
            assert graph_fingerprint(algae) == graph_fingerprint(twin)
        assert types_dfs(algae) == types_dfs(twin)

    def test_first_matching_rule_wins(self):
        graph = Graph(
            Tagged(name="seed"),
            rules=(
                Rule(Tagged, lhs=lambda ctx: False, rhs=lambda ctx: Tagged(name="never"), name="skip"),
                Rule(Tagged, rhs=lambda ctx: Tagged(name="first"), name="first"),
                Rule(Tagged, rhs=lambda ctx: Tagged(name="second"), name="second"),
            ),
        )
        report = rewrite(graph)
        assert names_dfs(graph) == ["first"]
        assert report.applied == {"first": 1}

    def test_report_counts_per_rule_name(self):
        rules = (
            Rule(Tagged, lhs=lambda ctx: ctx.data.name == "a", rhs=lambda ctx: Tagged(name="x"), name="grow_a"),
            Rule(Tagged, lhs=lambda ctx: ctx.data.name == "b", rhs=lambda ctx: Tagged(name="y"), name="grow_b"),
        )
        graph = Graph(Tagged(name="a") + (Tagged(name="b"), Tagged(name="b")), rules=rules)
        assert rewrite(graph).applied == {"grow_a": 1, "grow_b": 2}

        unnamed = Graph(
            Tagged(name="a") + Tagged(name="b"),
            rules=(
                Rule(Tagged, lhs=lambda ctx: ctx.data.name == "a", rhs=lambda ctx: Tagged(name="x")),
                Rule(Tagged, rhs=lambda ctx: Tagged(name="y")),
            ),
        )
        assert rewrite(unnamed).applied == {"Tagged": 2}

    def test_rule_for_base_type_applies_to_subclass(self):
        graph = Graph(
            SubTagged(name="child"),
            rules=Rule(Tagged, rhs=lambda ctx: Tagged(name="replaced")),
        )
        rewrite(graph)
        assert names_dfs(graph) == ["replaced"]

    def test_children_reattach_below_insertion_point(self):
        graph = Graph(
            Tagged(name="m") + Tagged(name="tail"),
            rules=Rule(
                Tagged,
                lhs=lambda ctx: ctx.data.name == "m",
                rhs=lambda ctx: Tagged(name="n") + (Tagged(name="leaf"),) + Tagged(name="end"),
            ),
        )
        rewrite(graph)
        assert names_dfs(graph) == ["n", "leaf", "end", "tail"]
        end_id = graph.children_ids(graph.root_id)[1]
        assert [graph.payload(c).name for c in graph.children_ids(end_id)] == ["tail"]
        validate_topology(graph)

    def test_replacement_keeps_sibling_position(self):
        graph = Graph(
            Tagged(name="root") + (Tagged(name="x"), Tagged(name="y"), Tagged(name="z")),
            rules=Rule(
                Tagged,
                lhs=lambda ctx: ctx.data.name == "y",
                rhs=lambda ctx: Tagged(name="y2"),
            ),
        )
        rewrite(graph)
        children = graph.children_ids(graph.root_id)
        assert [graph.payload(c).name for c in children] == ["x", "y2", "z"]

    def test_removing_branching_node_keeps_children_in_order(self):
        graph = Graph(
            Tagged(name="root") + (
                Tagged(name="x") + (Tagged(name="c1"), Tagged(name="c2")),
                Tagged(name="y"),
            ),
            rules=Rule(Tagged, lhs=lambda ctx: ctx.data.name == "x", rhs=lambda ctx: None),
        )
        rewrite(graph)
        children = graph.children_ids(graph.root_id)
        assert [graph.payload(c).name for c in children] == ["c1", "c2", "y"]
        assert all(graph.parent_id(c) == graph.root_id for c in children)
        validate_topology(graph)

    def test_replacing_branching_node_keeps_children_in_order(self):
        graph = Graph(
            Tagged(name="root") + (
                Tagged(name="x") + (Tagged(name="c1"), Tagged(name="c2")),
                Tagged(name="y"),
            ),
            rules=Rule(
                Tagged,
                lhs=lambda ctx: ctx.data.name == "x",
                rhs=lambda ctx: Tagged(name="x2") + Tagged(name="end"),
            ),
        )
        rewrite(graph)
        assert names_dfs(graph) == ["root", "x2", "end", "c1", "c2", "y"]
        x2_id = graph.children_ids(graph.root_id)[0]
        end_id = graph.children_ids(x2_id)[0]
        assert [graph.payload(c).name for c in graph.children_ids(end_id)] == ["c1", "c2"]
        validate_topology(graph)

    def test_empty_replacement_removes_only_the_node(self):
        graph = Graph(
            Tagged(name="a") + Tagged(name="gone") + Tagged(name="b"),
            rules=Rule(Tagged, lhs=lambda ctx: ctx.data.name == "gone", rhs=lambda ctx: None),
        )
        report = rewrite(graph)
        assert names_dfs(graph) == ["a", "b"]
        assert report.nodes_before == 3
        assert report.nodes_after == 2
        validate_topology(graph)

    def test_removing_root_promotes_single_child(self):
        graph = Graph(
            Tagged(name="a") + Tagged(name="b"),
            rules=Rule(Tagged, lhs=lambda ctx: ctx.is_root(), rhs=lambda ctx: None),
        )
        rewrite(graph)
        assert names_dfs(graph) == ["b"]
        assert graph.parent_id(graph.root_id) is None

    def test_rhs_may_reuse_matched_payload(self):
        graph = Graph(Cell(state=5), rules=Rule(Cell, rhs=lambda ctx: ctx.data + Cell(state=0)))
        cell = graph.payload(graph.root_id)
        rewrite(graph)
        assert graph.payload(graph.root_id) is cell
        assert len(graph) == 2

    def test_nodes_created_in_generation_are_not_rewritten(self, algae):
        report = rewrite(algae)
        assert report.applied == {"A": 1}
        assert report.nodes_after == 2

    def test_report_to_dict(self, algae):
        rewrite(algae)
        report = rewrite(algae)
        assert report.to_dict() == {
            "generation": 2,
            "nodes_before": 2,
            "nodes_after": 3,
            "replaced": 2,
            "applied": {"A": 1, "B": 1},
        }


# =============================================================================
# Rewrite Failure Tests
# =============================================================================

class TestRewriteFailures:
    """A failing rewrite must leave the graph untouched."""

    def test_predicate_violation_propagates(self):
        def strict(ctx):
            raise StructuralViolation("No meristem found in branch")

        graph = Graph(A() + B(), rules=(Rule(A, rhs=lambda ctx: B()), Rule(B, lhs=strict, rhs=lambda ctx: A())))
        before = graph_fingerprint(graph)
        with pytest.raises(StructuralViolation, match="No meristem"):
            rewrite(graph)
        assert graph_fingerprint(graph) == before
        assert graph.generation == 0

    def test_failed_splice_rolls_back(self):
        class W(Node):
            pass

        class D(Node):
            pass

        graph = Graph(A() + B(), rules=Rule(A, rhs=lambda ctx: W() + (B(),)))
        rewrite(graph)
        assert types_dfs(graph) == ["W", "B", "B"]

        graph.add_rule(Rule(B, rhs=lambda ctx: D()))
        graph.add_rule(Rule(W, rhs=lambda ctx: None))
        before = graph_fingerprint(graph)
        ids = graph.node_ids()

        with pytest.raises(StructuralViolation):
            rewrite(graph)

        assert graph_fingerprint(graph) == before
        assert graph.node_ids() == ids
        assert graph.generation == 1
        validate_topology(graph)

    def test_captures_must_return_pair(self):
        graph = Graph(A(), rules=Rule(A, lhs=lambda ctx: True, rhs=lambda ctx: B(), captures=True))
        with pytest.raises(TypeError, match="captures"):
            rewrite(graph)
        assert types_dfs(graph) == ["A"]

    def test_rhs_must_return_nodes(self):
        graph = Graph(A(), rules=Rule(A, rhs=lambda ctx: "B"))
        with pytest.raises(TypeError, match="rhs"):
            rewrite(graph)
        assert types_dfs(graph) == ["A"]
