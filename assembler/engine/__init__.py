"""
The aggregation engine, its outputs and resume files.

    - assembler.engine.assemblage: Assemblage state machine
    - assembler.engine.topology: Deconstructed outputs and connectivity graph
    - assembler.engine.serialization: JSON save/load for resuming runs
"""

from .assemblage import Assemblage, Candidate, EngineState, StepReport
from .topology import AssemblageOutputs, build_graph, connected_pairs, deconstruct, handle_topology
from .serialization import PlacedState, load_placed_objects, resume_assemblage, save_assemblage

__all__ = [
    "Assemblage",
    "Candidate",
    "EngineState",
    "StepReport",
    "AssemblageOutputs",
    "build_graph",
    "connected_pairs",
    "deconstruct",
    "handle_topology",
    "PlacedState",
    "load_placed_objects",
    "resume_assemblage",
    "save_assemblage",
]
