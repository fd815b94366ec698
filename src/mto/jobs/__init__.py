"""Operation units, the unit scheduler and the mto error taxonomy.

OperationUnit lives in mto.jobs.unit and UnitScheduler in
mto.jobs.scheduler; they are not re-exported here because the executor
and introspector modules they depend on import this package's models.
"""

from mto.jobs.exceptions import (
    ErrorCode,
    MTOError,
    ProcessExitError,
    StepTimeoutError,
    ToolNotFoundError,
    UnitStateError,
    UnitTimeoutError,
    ValidationError,
    WorkflowAbortedError,
    WorkflowError,
)
from mto.jobs.models import (
    OperationKind,
    OperationSpec,
    ProgressSample,
    UnitResult,
    UnitState,
)

__all__ = [
    # Errors
    "ErrorCode",
    "MTOError",
    "ProcessExitError",
    "StepTimeoutError",
    "ToolNotFoundError",
    "UnitStateError",
    "UnitTimeoutError",
    "ValidationError",
    "WorkflowAbortedError",
    "WorkflowError",
    # Models
    "OperationKind",
    "OperationSpec",
    "ProgressSample",
    "UnitResult",
    "UnitState",
]
