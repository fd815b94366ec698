"""Tests for loading workflow files."""

from __future__ import annotations

from pathlib import Path

import pytest

from mto.jobs.exceptions import ValidationError
from mto.jobs.models import OperationKind
from mto.workflow.loader import (
    WorkflowFileError,
    build_workflow,
    load_workflow_file,
    load_workflow_from_dict,
)
from mto.workflow.pipeline import Workflow


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "workflow.yaml"
    path.write_text(text)
    return path


# =============================================================================
# Parsing
# =============================================================================


class TestLoadWorkflowFile:
    """Tests for load_workflow_file()."""

    def test_valid_file(self, tmp_path):
        path = _write(
            tmp_path,
            """
input: sample.mp4
steps:
  - kind: convert
    output: out.mkv
    format: matroska
  - kind: thumbnail
    output: thumb.png
    time: "00:00:05"
  - kind: compress
    bitrate: 800k
""",
        )

        model = load_workflow_file(path)

        assert model.input == "sample.mp4"
        assert [s.kind for s in model.steps] == [
            OperationKind.CONVERT,
            OperationKind.THUMBNAIL,
            OperationKind.COMPRESS,
        ]
        assert model.steps[0].params() == {"format": "matroska"}
        assert model.steps[2].output is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkflowFileError, match="not found"):
            load_workflow_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path, "steps: [kind: convert\n")

        with pytest.raises(WorkflowFileError, match="Invalid YAML"):
            load_workflow_file(path)

    def test_empty_file(self, tmp_path):
        with pytest.raises(WorkflowFileError, match="empty"):
            load_workflow_file(_write(tmp_path, ""))

    def test_non_mapping(self, tmp_path):
        with pytest.raises(WorkflowFileError, match="mapping"):
            load_workflow_file(_write(tmp_path, "- convert\n"))


class TestValidation:
    """Tests for document validation."""

    @pytest.mark.parametrize(
        ("spelling", "expected"),
        [
            ("extract-audio", OperationKind.EXTRACT_AUDIO),
            ("extractAudio", OperationKind.EXTRACT_AUDIO),
            ("gif", OperationKind.TO_GIF),
        ],
    )
    def test_kind_aliases(self, spelling, expected):
        model = load_workflow_from_dict({"steps": [{"kind": spelling}]})

        assert model.steps[0].kind is expected

    @pytest.mark.parametrize(
        "step",
        [
            {"kind": "transcode"},
            {"kind": "compress", "bitrate": "fast"},
            {"kind": "thumbnail", "time": "five"},
            {"kind": "clip", "start": -1},
            {"kind": "clip", "duration": 0},
            {"kind": "watermark", "x": -5},
            {"kind": "extract_frames", "fps": 120},
            {"kind": "extract_audio", "codec": "opus"},
            {"kind": "convert", "colour": "red"},
        ],
    )
    def test_invalid_steps(self, step):
        with pytest.raises(WorkflowFileError, match="Workflow validation failed"):
            load_workflow_from_dict({"steps": [step]})

    def test_steps_required(self):
        with pytest.raises(WorkflowFileError):
            load_workflow_from_dict({"input": "a.mp4", "steps": []})

    def test_error_names_location(self):
        with pytest.raises(WorkflowFileError) as exc_info:
            load_workflow_from_dict(
                {"steps": [{"kind": "convert"}, {"kind": "compress", "bitrate": "x"}]}
            )

        assert "steps.1.bitrate" in str(exc_info.value)


# =============================================================================
# Building
# =============================================================================


class TestBuildWorkflow:
    """Tests for build_workflow()."""

    def test_steps_go_through_builder(self, media_dir):
        model = load_workflow_from_dict(
            {
                "input": str(media_dir / "sample.mp4"),
                "steps": [
                    {"kind": "convert", "output": "a.mkv"},
                    {
                        "kind": "watermark",
                        "output": "w.mp4",
                        "watermark": str(media_dir / "logo.png"),
                    },
                    {"kind": "thumbnail"},
                ],
            }
        )

        workflow = build_workflow(model, Workflow())

        assert workflow.input == str(media_dir / "sample.mp4")
        assert [s.output for s in workflow.steps] == ["a.mkv", "w.mp4", None]
        assert workflow.steps[1].params["watermark"] == str(media_dir / "logo.png")

    def test_builder_checks_apply(self):
        model = load_workflow_from_dict(
            {
                "steps": [
                    {
                        "kind": "replace_audio",
                        "output": "r.mp4",
                        "audio": "does-not-exist.mp3",
                    }
                ]
            }
        )

        with pytest.raises(ValidationError) as exc_info:
            build_workflow(model, Workflow())

        assert "does not exist" in str(exc_info.value)

    def test_builder_warnings_reach_listeners(self):
        model = load_workflow_from_dict(
            {"steps": [{"kind": "thumbnail", "output": "thumb.mp4"}]}
        )
        workflow = Workflow()
        warnings: list[str] = []
        workflow.on_warning.connect(lambda msg, kind: warnings.append(msg))

        build_workflow(model, workflow)

        assert len(warnings) == 1
