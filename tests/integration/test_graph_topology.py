"""
Connectivity graph and deconstructed outputs of a run.
"""

import networkx as nx

from assembler.core.frames import Frame
from assembler.engine.assemblage import Assemblage
from assembler.engine.topology import build_graph, connected_pairs, deconstruct
from assembler_policies import AssemblagePolicy, HeuristicsPolicy

START = [("A", Frame.world_xy())]


def _run(proto, max_objects=12):
    assemblage = Assemblage(
        [proto], START, AssemblagePolicy(max_objects=max_objects, seed=4), HeuristicsPolicy(rule_source="enumerate")
    )
    assemblage.run()
    return assemblage


class TestBuildGraph:
    """Tests for the networkx view of the aggregation."""

    def test_one_node_per_object(self, cube_a):
        """Every placed object is a node with its attributes."""
        assemblage = _run(cube_a)
        G = build_graph(assemblage.objects)

        assert G.number_of_nodes() == len(assemblage)
        assert G.nodes[0]["name"] == "A"
        assert G.nodes[0]["origin"] == (0.0, 0.0, 0.0)

    def test_edges_match_connected_pairs(self, cube_a):
        """One edge per connected object pair."""
        assemblage = _run(cube_a)
        G = build_graph(assemblage.objects)
        pairs = {(a, b) for a, _, b, _ in connected_pairs(assemblage.objects)}

        assert G.number_of_edges() == len(pairs)
        assert all(d["kind"] == "connection" for _, _, d in G.edges(data=True))

    def test_aggregation_is_connected(self, cube_a):
        """Every object is reachable from the start object."""
        assemblage = _run(cube_a)

        assert nx.is_connected(build_graph(assemblage.objects))

    def test_rule_edges_are_in_graph(self, cube_a):
        """Each object is linked to the receiver it was placed on."""
        assemblage = _run(cube_a)
        G = build_graph(assemblage.objects)

        for aind, receiver in enumerate(assemblage.receiver_indices):
            if receiver >= 0:
                assert G.has_edge(aind, receiver)

    def test_occlusion_edges_are_optional(self, cube_a):
        """Occlusion edges only appear on request and never replace connections."""
        assemblage = _run(cube_a, max_objects=20)
        plain = build_graph(assemblage.objects)
        full = build_graph(assemblage.objects, include_occlusions=True)

        assert full.number_of_edges() >= plain.number_of_edges()
        for a, b in plain.edges:
            assert full.edges[a, b]["kind"] == "connection"


class TestDeconstruct:
    """Tests for the flat output view."""

    def test_outputs_mirror_engine(self, cube_a):
        assemblage = _run(cube_a)
        outputs = deconstruct(assemblage)

        assert outputs.rule_strings == assemblage.rule_strings
        assert len(outputs.handle_topology) == len(assemblage)
        assert outputs.to_dict()["objects"][0]["aind"] == 0
