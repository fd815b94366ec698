"""Exit codes shared by all CLI commands."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for mto CLI commands."""

    SUCCESS = 0

    # A unit, batch entry or workflow step failed, or a tool is missing
    OPERATION_FAILED = 1

    # Bad arguments, invalid workflow file or configuration (click also
    # exits with 2 on usage errors)
    USAGE_ERROR = 2
