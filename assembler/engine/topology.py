"""
Deconstructed outputs of an aggregation and its connectivity graph.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple
import networkx as nx

from ..core.assembly_object import AssemblyObject
from ..core.handle import Occupancy

HandleState = Tuple[int, int, int]


def handle_topology(objects: Sequence[AssemblyObject]) -> List[List[HandleState]]:
    """(occupancy, neighbour_object, neighbour_handle) for every handle of every object."""
    return [
        [(int(h.occupancy), h.neighbour_object, h.neighbour_handle) for h in obj.handles]
        for obj in objects
    ]


def connected_pairs(objects: Sequence[AssemblyObject]) -> List[Tuple[int, int, int, int]]:
    """
    Connected handle pairs, each listed once as (aind_a, handle_a, aind_b, handle_b)
    with aind_a < aind_b.
    """
    pairs = []
    for obj in objects:
        for i, h in enumerate(obj.handles):
            if h.occupancy == Occupancy.CONNECTED and obj.aind < h.neighbour_object:
                pairs.append((obj.aind, i, h.neighbour_object, h.neighbour_handle))
    return pairs


@dataclass
class AssemblageOutputs:
    """Flat view of a run, in commit order."""
    objects: List[AssemblyObject] = field(default_factory=list)
    rule_strings: List[str] = field(default_factory=list)
    receiver_indices: List[int] = field(default_factory=list)
    available: List[int] = field(default_factory=list)
    unreachable: List[int] = field(default_factory=list)
    handle_topology: List[List[HandleState]] = field(default_factory=list)
    sandbox_available: List[int] = field(default_factory=list)
    sandbox_unreachable: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objects": [
                {"aind": o.aind, "name": o.name, "type": o.type, "origin": o.origin.tolist()}
                for o in self.objects
            ],
            "rule_strings": list(self.rule_strings),
            "receiver_indices": list(self.receiver_indices),
            "available": list(self.available),
            "unreachable": list(self.unreachable),
            "handle_topology": [[list(s) for s in states] for states in self.handle_topology],
            "sandbox_available": list(self.sandbox_available),
            "sandbox_unreachable": list(self.sandbox_unreachable),
        }


def deconstruct(assemblage) -> AssemblageOutputs:
    """Collect the outputs of an Assemblage."""
    return AssemblageOutputs(
        objects=list(assemblage.objects),
        rule_strings=list(assemblage.rule_strings),
        receiver_indices=list(assemblage.receiver_indices),
        available=list(assemblage.available),
        unreachable=list(assemblage.unreachable),
        handle_topology=handle_topology(assemblage.objects),
        sandbox_available=list(assemblage.sandbox_available),
        sandbox_unreachable=list(assemblage.sandbox_unreachable),
    )


def build_graph(objects: Sequence[AssemblyObject], include_occlusions: bool = False) -> nx.Graph:
    """
    Connectivity graph of placed objects.

    Parameters
    ----------
    objects : sequence of AssemblyObject
        Placed objects
    include_occlusions : bool
        Also add an edge with kind="occlusion" between an occluded object and
        its occluder, unless the two are already connected

    Returns
    -------
    nx.Graph
        One node per object (name, type, origin, weight) and one edge per
        connected object pair (kind="connection", handles=[(ha, hb), ...])
    """
    G = nx.Graph()
    for obj in objects:
        G.add_node(obj.aind, name=obj.name, type=obj.type, origin=tuple(obj.origin.tolist()), weight=obj.weight)

    for a, ha, b, hb in connected_pairs(objects):
        if G.has_edge(a, b):
            G.edges[a, b]["handles"].append((ha, hb))
        else:
            G.add_edge(a, b, kind="connection", handles=[(ha, hb)])

    if include_occlusions:
        for obj in objects:
            for i, h in enumerate(obj.handles):
                if h.occupancy != Occupancy.OCCLUDED or h.neighbour_object < 0:
                    continue
                if not G.has_edge(obj.aind, h.neighbour_object):
                    G.add_edge(obj.aind, h.neighbour_object, kind="occlusion", handles=[])
                if G.edges[obj.aind, h.neighbour_object]["kind"] == "occlusion":
                    G.edges[obj.aind, h.neighbour_object]["handles"].append((obj.aind, i))
    return G
