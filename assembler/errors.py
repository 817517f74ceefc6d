"""
Error taxonomy for the assembler engine.

Configuration and input problems are fatal and raised immediately, before
any engine state is built. Running out of admissible receivers is not an
error: it is reported through the engine state (see
``assembler.engine.assemblage.EngineState``).
"""

from typing import Optional


class AssemblerError(Exception):
    """Base class for all assembler errors."""
    pass


class ConfigurationError(AssemblerError):
    """Raised when a catalog, rule set, field or policy is misconfigured."""
    pass


class RuleParseError(ConfigurationError):
    """Raised when a rule or compatibility string cannot be parsed."""

    def __init__(self, message: str, text: Optional[str] = None):
        self.text = text
        if text is not None:
            message = f"{message}: {text!r}"
        super().__init__(message)


class InputError(AssemblerError):
    """Raised when geometry handed to an AssemblyObject or Handle is invalid."""
    pass
