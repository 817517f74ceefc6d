"""
JSON persistence of a run, for resuming it later.

The file holds every placed object (collision and offset mesh vertices,
faces, frames, handle state, indices and values) plus the rule strings,
receiver indices and the available/unreachable partition. Loading restores
handle topology exactly.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging

from assembler_policies import AssemblagePolicy

from ..core.assembly_object import AssemblyObject
from ..errors import InputError
from .assemblage import Assemblage

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass
class PlacedState:
    """Placed objects and bookkeeping read back from a saved run."""
    objects: List[AssemblyObject] = field(default_factory=list)
    rule_strings: List[str] = field(default_factory=list)
    receiver_indices: List[int] = field(default_factory=list)
    available: List[int] = field(default_factory=list)
    unreachable: List[int] = field(default_factory=list)
    policy: Optional[AssemblagePolicy] = None


def assemblage_to_dict(assemblage: Assemblage) -> Dict[str, Any]:
    return {
        "format_version": FORMAT_VERSION,
        "policy": assemblage.policy.to_dict(),
        "state": assemblage.state.value,
        "objects": [obj.to_dict() for obj in assemblage.objects],
        "rule_strings": list(assemblage.rule_strings),
        "receiver_indices": list(assemblage.receiver_indices),
        "available": list(assemblage.available),
        "unreachable": list(assemblage.unreachable),
    }


def save_assemblage(assemblage: Assemblage, path: Union[str, Path]) -> Path:
    """
    Write a run to a JSON file.

    Parameters
    ----------
    assemblage : Assemblage
        Run to save
    path : str or Path
        Output file; parent directories are created

    Returns
    -------
    Path
        The written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(assemblage_to_dict(assemblage), f, indent=2)
    logger.info(f"Saved {len(assemblage.objects)} placed object(s) to {path}")
    return path


def placed_state_from_dict(data: Dict[str, Any]) -> PlacedState:
    version = data.get("format_version")
    if version != FORMAT_VERSION:
        raise InputError(f"Unsupported assemblage file version: {version!r}")
    policy = data.get("policy")
    return PlacedState(
        objects=[AssemblyObject.from_dict(d) for d in data.get("objects", [])],
        rule_strings=list(data.get("rule_strings", [])),
        receiver_indices=[int(i) for i in data.get("receiver_indices", [])],
        available=[int(i) for i in data.get("available", [])],
        unreachable=[int(i) for i in data.get("unreachable", [])],
        policy=AssemblagePolicy.from_dict(policy) if policy is not None else None,
    )


def load_placed_objects(path: Union[str, Path]) -> PlacedState:
    """
    Read a run saved by save_assemblage().

    Raises
    ------
    InputError
        If the file is missing or has an unknown format version
    """
    path = Path(path)
    if not path.exists():
        raise InputError(f"Assemblage file not found: {path}")
    with open(path, "r") as f:
        data = json.load(f)
    return placed_state_from_dict(data)


def resume_assemblage(path: Union[str, Path], catalog, heuristics, exogenous=None,
                      policy: Optional[AssemblagePolicy] = None) -> Assemblage:
    """
    Load a saved run and continue it with Assemblage.from_existing().

    The saved policy is used unless one is given.
    """
    state = load_placed_objects(path)
    policy = policy or state.policy
    if policy is None:
        raise InputError(f"No policy saved in {path}; pass one explicitly")
    return Assemblage.from_existing(
        catalog,
        state.objects,
        policy,
        heuristics,
        exogenous=exogenous,
        rule_strings=state.rule_strings,
        receiver_indices=state.receiver_indices,
        unreachable=state.unreachable,
    )
