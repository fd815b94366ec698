"""Workflow data models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

from mto.jobs.models import OperationKind, OperationSpec

# Parameters a step may carry besides kind/input/output.
STEP_PARAMETERS = (
    "format",
    "bitrate",
    "time",
    "codec",
    "audio",
    "start",
    "duration",
    "watermark",
    "x",
    "y",
    "fps",
)


@dataclass
class WorkflowStep:
    """One step of a workflow.

    ``input`` is always filled in by the sequencer just before the step
    runs; ``output`` is filled in then too when it was not given.
    """

    kind: OperationKind
    output: str | None = None
    input: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.params) - set(STEP_PARAMETERS)
        if unknown:
            raise ValueError(
                f"Unknown parameters for {self.kind.value}: "
                f"{', '.join(sorted(unknown))}"
            )

    def to_spec(self) -> OperationSpec:
        """Build the OperationSpec for this step.

        Raises:
            ValueError: If the input has not been resolved yet.
        """
        if self.input is None:
            raise ValueError(f"Input for {self.kind.value} step is not resolved")
        return OperationSpec(
            kind=self.kind, input=self.input, output=self.output, **self.params
        )

    @classmethod
    def from_spec(cls, spec: OperationSpec) -> WorkflowStep:
        """Create a step from a spec; its input is ignored and re-resolved."""
        params = {
            f.name: getattr(spec, f.name)
            for f in fields(spec)
            if f.name in STEP_PARAMETERS and getattr(spec, f.name) is not None
        }
        return cls(kind=spec.kind, output=spec.output, params=params)


@dataclass(frozen=True)
class WorkflowResult:
    """Outcome of one workflow run."""

    success: bool
    outputs: list[str] = field(default_factory=list)
    """Outputs of the steps that completed, in order."""

    error: BaseException | None = None
    step_number: int | None = None
    """1-based failing step, or a sentinel for global failures."""
