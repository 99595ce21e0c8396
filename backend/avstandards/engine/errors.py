"""Rule engine exceptions."""

from typing import Optional


class RuleEngineError(Exception):
    """Base class for every error raised by the standards engine."""


class ExpressionParseError(RuleEngineError):
    """A rule expression is syntactically malformed.

    Raised while compiling an expression; the engine catches it per rule,
    skips that rule and keeps validating the rest of the design.
    """

    def __init__(self, message: str, expression: str = "", position: Optional[int] = None):
        self.expression = expression
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


class ResolverInvariantError(RuleEngineError):
    """The conflict resolver produced a grouping that breaks its own contract."""


class HierarchyError(RuleEngineError):
    """The standards hierarchy references unknown, duplicate or misplaced nodes."""


class HierarchyCycleError(HierarchyError):
    """A parent link would make a node its own ancestor."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Standards hierarchy cycle: {' -> '.join(cycle)}")
