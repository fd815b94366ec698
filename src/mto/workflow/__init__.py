"""Multi-step workflows: builder, sequencer and YAML workflow files."""

from mto.workflow.errors import classify_error
from mto.workflow.loader import (
    WorkflowFileError,
    build_workflow,
    load_workflow_file,
)
from mto.workflow.models import WorkflowResult, WorkflowStep
from mto.workflow.pipeline import (
    ABORTED_STEP_INDEX,
    PREFLIGHT_STEP_INDEX,
    Workflow,
)

__all__ = [
    "ABORTED_STEP_INDEX",
    "PREFLIGHT_STEP_INDEX",
    "Workflow",
    "WorkflowFileError",
    "WorkflowResult",
    "WorkflowStep",
    "build_workflow",
    "classify_error",
    "load_workflow_file",
]
