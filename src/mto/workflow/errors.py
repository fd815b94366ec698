"""Classification of raw failures into the mto error taxonomy.

Structured signals come first: errors that already carry a category pass
through, OS errors are mapped by errno, and process failures are mapped
from the diagnostic lines ffmpeg printed before exiting. Matching on an
arbitrary exception's message is the last resort.
"""

from __future__ import annotations

import errno
import logging

from mto.jobs.exceptions import (
    ConversionFailedError,
    InvalidMediaError,
    MediaFileNotFoundError,
    MTOError,
    NoCompatibleStreamError,
    PermissionDeniedError,
    ProcessExitError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

# ffmpeg diagnostic fragments, checked in order against lowercase text.
_DIAGNOSTIC_RULES: tuple[tuple[tuple[str, ...], type[MTOError], str], ...] = (
    (
        ("does not contain any stream", "matches no streams", "stream specifier"),
        NoCompatibleStreamError,
        "No compatible streams found for {kind} operation",
    ),
    (
        ("invalid data found", "moov atom not found", "invalid data"),
        InvalidMediaError,
        "Corrupted or invalid media file",
    ),
    (
        ("no such file or directory",),
        MediaFileNotFoundError,
        "Input file not found - check file path",
    ),
    (
        ("permission denied",),
        PermissionDeniedError,
        "Permission denied - check file permissions",
    ),
    (
        ("conversion failed", "error while opening encoder", "unknown encoder"),
        ConversionFailedError,
        "{kind} operation failed - check codec compatibility",
    ),
)

_NOT_FOUND_ERRNOS = frozenset({errno.ENOENT, errno.ENOTDIR})
_PERMISSION_ERRNOS = frozenset({errno.EACCES, errno.EPERM, errno.EROFS})


def _match_text(text: str, kind: str | None) -> MTOError | None:
    lowered = text.casefold()
    for fragments, error_type, template in _DIAGNOSTIC_RULES:
        if any(fragment in lowered for fragment in fragments):
            return error_type(template.format(kind=kind or "step"), kind=kind)
    return None


def classify_error(error: BaseException, kind: str | None = None) -> MTOError:
    """Map *error* onto the taxonomy.

    Args:
        error: Raw failure from a unit or from workflow validation.
        kind: Operation kind value of the failing step, if any.

    Returns:
        An MTOError subclass. The original error is chained as __cause__
        when a new error is created.
    """
    if isinstance(error, ProcessExitError):
        categorized = _match_text("\n".join(error.diagnostics), kind or error.kind)
        if categorized is not None:
            categorized.__cause__ = error
            return categorized
        if error.kind is None and kind is not None:
            error.kind = kind
        return error

    if isinstance(error, MTOError):
        return error

    if isinstance(error, OSError) and error.errno is not None:
        if error.errno in _NOT_FOUND_ERRNOS:
            result: MTOError = MediaFileNotFoundError(
                f"File not found: {error.filename or error}", kind=kind
            )
            result.__cause__ = error
            return result
        if error.errno in _PERMISSION_ERRNOS:
            result = PermissionDeniedError(
                f"Permission denied: {error.filename or error}", kind=kind
            )
            result.__cause__ = error
            return result

    categorized = _match_text(str(error), kind)
    if categorized is None:
        logger.debug("Unclassified error %r", error)
        categorized = WorkflowError(f"Pipeline error: {error}", kind=kind)
    categorized.__cause__ = error
    return categorized
