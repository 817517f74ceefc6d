"""
Assembler Policies - Centralized run configuration for the assembler engine.

This package provides all policy dataclasses consumed by the engine. All
policies are JSON-serializable and validate themselves before a run starts.

Usage:
    from assembler_policies import AssemblagePolicy, HeuristicsPolicy, OperationReport
"""

from .base import (
    OperationReport,
    validate_policy,
)

from .assemblage import (
    AssemblagePolicy,
    HeuristicsPolicy,
    ExogenousPolicy,
    RECEIVER_MODES,
    SENDER_MODES,
    ENVIRONMENT_MODES,
)

__all__ = [
    # Base
    "OperationReport",
    "validate_policy",
    # Run policies
    "AssemblagePolicy",
    "HeuristicsPolicy",
    "ExogenousPolicy",
    "RECEIVER_MODES",
    "SENDER_MODES",
    "ENVIRONMENT_MODES",
]
