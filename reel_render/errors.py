from __future__ import annotations


class RenderError(Exception):
    """Base class for every failure a render job can surface to its caller."""

    stage = "render"
    is_input_error = False

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        diagnostic: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.index = index
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        if self.diagnostic:
            return f"{self.message}\n{self.diagnostic}"
        return self.message

    def to_dict(self) -> dict[str, object]:
        return {
            "error": type(self).__name__,
            "stage": self.stage,
            "index": self.index,
            "message": self.message,
            "diagnostic": self.diagnostic,
            "input_error": self.is_input_error,
        }


class EmptyInputError(RenderError):
    stage = "init"
    is_input_error = True


class WorkspaceError(RenderError):
    """The job's scratch directory could not be allocated."""

    stage = "init"


class ProbeFailure(RenderError):
    stage = "probing"


class ParseFailure(RenderError):
    stage = "probing"
    is_input_error = True


class SegmentEncodeFailure(RenderError):
    stage = "synthesizing"

    def __init__(self, index: int, message: str | None = None, *, diagnostic: str | None = None):
        super().__init__(
            message or f"Failed to encode segment {index}",
            index=index,
            diagnostic=diagnostic,
        )


class ManifestWriteFailure(RenderError):
    stage = "manifest_building"


class MergeFailure(RenderError):
    stage = "assembling"


class CleanupFailure(RenderError):
    """Logged when workspace removal fails; never raised over a primary error."""

    stage = "cleanup"


class ToolInvocationError(Exception):
    """Raised by the tool runner; each stage converts it into its own error."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        output: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.returncode = returncode
        self.output = output
        self.timed_out = timed_out
