"""
Rules: compiled sender -> receiver compatibility edges.

Text format (lossless round trip):

    "{ReceiverName}|{receiverHandle}={rotationDegrees}<{SenderName}|{senderHandle}%{weight}"

e.g. "Brick|0=90<Brick|2%1". A heuristics set is a comma-separated list of
rule strings. Handle-type compatibility tables use "{receiverType}<{senderType}".
"""

from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Tuple
import re

from ..errors import RuleParseError

_NAME = r"[^|<>=%,\s]+"
_NUMBER = r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?"

RULE_PATTERN = re.compile(
    rf"^(?P<r_name>{_NAME})\|(?P<r_handle>\d+)=(?P<angle>{_NUMBER})"
    rf"<(?P<s_name>{_NAME})\|(?P<s_handle>\d+)%(?P<weight>\d+)$"
)

COMPATIBILITY_PATTERN = re.compile(r"^\s*(?P<r_type>-?\d+)\s*<\s*(?P<s_type>-?\d+)\s*$")


def format_angle(angle: float) -> str:
    """Integral angles print without decimals, others use the shortest float repr."""
    value = float(angle)
    if value.is_integer():
        return str(int(value))
    return repr(value)


class RuleTokens(NamedTuple):
    """Syntactic content of a rule string, before catalog resolution."""
    receiver_name: str
    receiver_handle: int
    angle: float
    angle_text: str
    sender_name: str
    sender_handle: int
    weight: int


@dataclass(frozen=True)
class Rule:
    """
    A compiled compatibility edge between a receiver handle and a sender handle.

    Rules hold indices only; geometry is resolved against the Catalog when a
    candidate is generated.
    """
    receiver_name: str
    receiver_type: int
    receiver_handle: int
    receiver_rotation: int
    rotation_angle: float
    sender_name: str
    sender_type: int
    sender_handle: int
    weight: int = 1
    angle_text: Optional[str] = None

    def to_string(self) -> str:
        angle = self.angle_text if self.angle_text is not None else format_angle(self.rotation_angle)
        return (
            f"{self.receiver_name}|{self.receiver_handle}={angle}"
            f"<{self.sender_name}|{self.sender_handle}%{self.weight}"
        )

    def __str__(self) -> str:
        return self.to_string()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receiver_name": self.receiver_name,
            "receiver_type": self.receiver_type,
            "receiver_handle": self.receiver_handle,
            "receiver_rotation": self.receiver_rotation,
            "rotation_angle": self.rotation_angle,
            "sender_name": self.sender_name,
            "sender_type": self.sender_type,
            "sender_handle": self.sender_handle,
            "weight": self.weight,
            "rule": self.to_string(),
        }


def parse_rule_string(text: str) -> RuleTokens:
    """
    Parse the syntax of one rule string.

    Parameters
    ----------
    text : str
        Rule string, e.g. "A|0=90<B|2%1"

    Returns
    -------
    RuleTokens
        Names, indices, angle and weight as written

    Raises
    ------
    RuleParseError
        If the string does not match the rule grammar
    """
    if not isinstance(text, str):
        raise RuleParseError("Rule must be a string", repr(text))
    match = RULE_PATTERN.match(text.strip())
    if match is None:
        raise RuleParseError("Malformed rule string", text)

    return RuleTokens(
        receiver_name=match.group("r_name"),
        receiver_handle=int(match.group("r_handle")),
        angle=float(match.group("angle")),
        angle_text=match.group("angle"),
        sender_name=match.group("s_name"),
        sender_handle=int(match.group("s_handle")),
        weight=int(match.group("weight")),
    )


def split_heuristics_set(text: str) -> List[str]:
    """Split a comma-separated heuristics set into individual rule strings."""
    return [token.strip() for token in text.split(",") if token.strip()]


def parse_compatibility_string(text: str) -> Tuple[int, int]:
    """
    Parse a "receiverType<senderType" compatibility pair.

    Raises
    ------
    RuleParseError
        If the string is not two integers separated by '<'
    """
    match = COMPATIBILITY_PATTERN.match(text) if isinstance(text, str) else None
    if match is None:
        raise RuleParseError("Malformed compatibility string", str(text))
    return int(match.group("r_type")), int(match.group("s_type"))


def write_rules(rules: List[Rule]) -> str:
    """Serialize rules as one comma-separated heuristics set."""
    return ",".join(rule.to_string() for rule in rules)
