"""Workflow files: YAML documents turned into Workflow builder calls.

Example document::

    input: sample.mp4
    steps:
      - kind: convert
        output: out/sample.mkv
        format: matroska
      - kind: thumbnail
        output: out/thumb.png
        time: "00:00:05"
      - kind: compress
        bitrate: 800k

Steps without an output get a generated name when the workflow runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from mto.jobs.exceptions import ValidationError
from mto.jobs.models import OperationKind
from mto.workflow.models import WorkflowStep
from mto.workflow.pipeline import (
    MAX_FRAME_RATE,
    SUPPORTED_AUDIO_CODECS,
    Workflow,
)

logger = logging.getLogger(__name__)


class WorkflowFileError(ValidationError):
    """Workflow file cannot be read or does not validate."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class StepModel(BaseModel):
    """Pydantic model for one workflow step."""

    model_config = ConfigDict(extra="forbid")

    kind: OperationKind
    output: str | None = None
    format: str | None = None
    bitrate: str | None = Field(default=None, pattern=r"^\d+[kKmM]?$")
    time: str | None = Field(
        default=None,
        pattern=r"^(?:\d+(?:\.\d+)?|\d{2}:\d{2}:\d{2}(?:\.\d+)?)$",
    )
    codec: str | None = None
    audio: str | None = None
    start: float | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, gt=0)
    watermark: str | None = None
    x: int | None = Field(default=None, ge=0)
    y: int | None = Field(default=None, ge=0)
    fps: float | None = Field(default=None, gt=0, le=MAX_FRAME_RATE)

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> OperationKind:
        """Accept hyphenated and camel-case kind names."""
        if isinstance(v, str):
            return OperationKind.parse(v)
        return v

    @field_validator("codec")
    @classmethod
    def validate_codec(cls, v: str | None) -> str | None:
        """Validate audio codec."""
        if v is not None and v.casefold() not in SUPPORTED_AUDIO_CODECS:
            raise ValueError(
                f"Unsupported audio codec '{v}'. "
                f"Supported: {', '.join(SUPPORTED_AUDIO_CODECS)}"
            )
        return v

    def params(self) -> dict[str, Any]:
        """Kind-specific parameters that were set."""
        return self.model_dump(exclude={"kind", "output"}, exclude_none=True)


class WorkflowFileModel(BaseModel):
    """Pydantic model for a workflow document."""

    model_config = ConfigDict(extra="forbid")

    input: str | None = None
    steps: list[StepModel] = Field(min_length=1)


def _format_validation_error(error: PydanticValidationError) -> str:
    errors = error.errors()
    if errors:
        first_error = errors[0]
        loc = ".".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", str(error))
        if loc:
            return f"Workflow validation failed: {loc}: {msg}"
        return f"Workflow validation failed: {msg}"
    return f"Workflow validation failed: {error}"


def load_workflow_file(path: Path) -> WorkflowFileModel:
    """Load and validate a workflow document from a YAML file.

    Raises:
        WorkflowFileError: If the file is missing, unreadable or invalid.
    """
    if not path.exists():
        raise WorkflowFileError(f"Workflow file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise WorkflowFileError(f"Invalid YAML syntax: {e}") from e
    except OSError as e:
        raise WorkflowFileError(f"Cannot read workflow file {path}: {e}") from e

    if data is None:
        raise WorkflowFileError("Workflow file is empty")
    if not isinstance(data, dict):
        raise WorkflowFileError("Workflow file must be a YAML mapping")

    return load_workflow_from_dict(data)


def load_workflow_from_dict(data: dict[str, Any]) -> WorkflowFileModel:
    """Validate a workflow document already parsed into a dict.

    Raises:
        WorkflowFileError: If the document does not validate.
    """
    try:
        return WorkflowFileModel.model_validate(data)
    except PydanticValidationError as e:
        raise WorkflowFileError(_format_validation_error(e)) from e


def _add_with_builder(workflow: Workflow, step: StepModel, output: str) -> None:
    """Append *step* through the builder method of its kind."""
    p = step.params()
    builders: dict[OperationKind, Callable[[], Workflow]] = {
        OperationKind.CONVERT: lambda: workflow.convert(output, p.get("format")),
        OperationKind.COMPRESS: lambda: workflow.compress(output, p.get("bitrate")),
        OperationKind.THUMBNAIL: lambda: workflow.thumbnail(output, p.get("time")),
        OperationKind.EXTRACT_AUDIO: lambda: workflow.extract_audio(
            output, p.get("codec", "aac")
        ),
        OperationKind.REPLACE_AUDIO: lambda: workflow.replace_audio(
            output, p.get("audio", "")
        ),
        OperationKind.TO_GIF: lambda: workflow.to_gif(
            output, p.get("start"), p.get("duration")
        ),
        OperationKind.CLIP: lambda: workflow.clip(
            output, p.get("start", 0.0), p.get("duration", 5.0)
        ),
        OperationKind.CONCAT: lambda: workflow.concat(output),
        OperationKind.WATERMARK: lambda: workflow.add_watermark(
            output, p.get("watermark", ""), p.get("x", 10), p.get("y", 10)
        ),
        OperationKind.EXTRACT_FRAMES: lambda: workflow.extract_frames(
            output, p.get("fps")
        ),
    }
    build = builders.get(step.kind)
    if build is None:
        workflow.add_step(WorkflowStep(kind=step.kind, output=output, params=p))
    else:
        build()


def build_workflow(model: WorkflowFileModel, workflow: Workflow) -> Workflow:
    """Feed a validated document into *workflow*'s builder.

    Steps with an output go through the kind's builder method, so they get
    the same eager checks as code-built workflows. Steps without one are
    appended as-is and receive a generated output at run time.

    Raises:
        ValidationError: If a builder method rejects a step.
    """
    if model.input:
        workflow.set_input(model.input)
    for index, step in enumerate(model.steps, start=1):
        logger.debug("Workflow file step %d: %s", index, step.kind.value)
        if step.output:
            _add_with_builder(workflow, step, step.output)
        else:
            workflow.add_step(WorkflowStep(kind=step.kind, params=step.params()))
    return workflow
