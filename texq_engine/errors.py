"""Exception hierarchy.

Fatal (abort the evaluation):      GpuFault, ContextLostFault
Evaluation-scoped (reported):      EvaluationFault, ErrorInjectionFault
Recoverable lookups / bad input:   UnknownGateError, CircuitError
"""
from __future__ import annotations

from typing import Any


class DetailedError(Exception):
    """An error carrying a dict of context values alongside its message."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message
        parts = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({parts})"


class GpuFault(DetailedError):
    """Texture allocation, framebuffer or context failure. Not recoverable."""


class ContextLostFault(GpuFault):
    """Texture contents were lost with the rendering context (or it is still lost)."""


class EvaluationFault(DetailedError):
    """Failure scoped to a single circuit evaluation."""


class ErrorInjectionFault(EvaluationFault):
    """Raised on purpose by the error injection kernel."""


class UnknownGateError(KeyError):
    """No gate is registered under the requested serialization id."""

    def __init__(self, gate_id: str):
        super().__init__(gate_id)
        self.gate_id = gate_id

    def __str__(self) -> str:
        return f"unknown gate id {self.gate_id!r}"


class CircuitError(ValueError):
    """Malformed circuit data."""
