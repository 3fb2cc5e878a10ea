"""
Operation Results
=================

Mutations return the primary value and, separately, the side effects that
failed without aborting the mutation (audit entries, internal notifications,
chat dispatches). Callers decide success from the primary value alone;
warnings are for diagnostics and tests.
"""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class SideEffectWarning:
    """A side effect that failed and was demoted to a warning."""
    step: str
    error: str
    context: dict = field(default_factory=dict)


@dataclass
class Outcome(Generic[T]):
    """Primary result of an operation plus its non-fatal warnings."""
    value: T
    warnings: List[SideEffectWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when every side effect succeeded."""
        return not self.warnings

    def warn(self, step: str, error: Exception | str, **context) -> None:
        self.warnings.append(SideEffectWarning(step=step, error=str(error), context=context))

    def extend(self, warnings: Optional[List[SideEffectWarning]]) -> None:
        if warnings:
            self.warnings.extend(warnings)
