"""
Assembler - discrete, rule-driven 3D aggregation.

A catalog of prototype AssemblyObjects with typed Handles is grown one
object at a time: a receiver with a free handle is picked, every rule that
fits it is instantiated as a candidate, candidates that collide with placed
objects or the environment are rejected, and one survivor is committed.

Usage:
    from assembler import Assemblage, AssemblyObject, Handle, Frame
    from assembler_policies import AssemblagePolicy, HeuristicsPolicy
"""

__version__ = "0.1.0"

from .errors import AssemblerError, ConfigurationError, InputError, RuleParseError
from .core import (
    AssemblyObject,
    Catalog,
    Field,
    Frame,
    Handle,
    Occupancy,
    Rule,
    RuleSource,
)
from .exogenous import EnvironmentMode, ExogenousSettings
from .heuristics import HeuristicsSettings, ReceiverMode, SenderMode
from .engine import (
    Assemblage,
    EngineState,
    StepReport,
    build_graph,
    deconstruct,
    load_placed_objects,
    save_assemblage,
)

__all__ = [
    "AssemblerError",
    "ConfigurationError",
    "InputError",
    "RuleParseError",
    "AssemblyObject",
    "Catalog",
    "Field",
    "Frame",
    "Handle",
    "Occupancy",
    "Rule",
    "RuleSource",
    "EnvironmentMode",
    "ExogenousSettings",
    "HeuristicsSettings",
    "ReceiverMode",
    "SenderMode",
    "Assemblage",
    "EngineState",
    "StepReport",
    "build_graph",
    "deconstruct",
    "load_placed_objects",
    "save_assemblage",
]
