"""
Simulation errors.

All of these are local, synchronous and recoverable: the caller surfaces
them to the participant and retries with corrected input. None of them
leaves a SessionState partially mutated.
"""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for every rejected engine operation."""
    pass


class InvalidReference(SimulationError):
    """Unknown category, option, stakeholder or session id."""
    pass


class BudgetExceeded(SimulationError):
    """A selection would drive the remaining budget below zero."""

    def __init__(self, message: str, *, remaining: int = 0, required: int = 0) -> None:
        super().__init__(message)
        self.remaining = remaining
        self.required = required


class IncompletePolicySet(SimulationError):
    """Leaving the allocation phase with a category still unselected."""

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class InvalidPhase(SimulationError):
    """Operation attempted while the session or category is in the wrong state."""
    pass


class PhaseOrderViolation(SimulationError):
    """Illegal phase transition: backwards, skipping, or predicate unmet."""
    pass


class IncompleteReflection(SimulationError):
    """Reflections submitted with one or more questions unanswered."""

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []
