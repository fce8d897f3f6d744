from typing import List, Optional


class PassthroughTestError(Exception):
    """Base class for every error raised by the passthrough test."""


class ToolNotFound(PassthroughTestError):
    """A required external tool (ffmpeg) is not installed."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(
            f"{tool} not found! Please install FFmpeg with hardware acceleration support."
        )


class NoAccelerationFound(PassthroughTestError):
    """No usable hardware acceleration backend was detected."""

    def __init__(self, message: str, hints: Optional[List[str]] = None):
        self.hints = hints or []
        super().__init__(message)


class AssetGenerationFailed(PassthroughTestError):
    """ffmpeg could not synthesize the benchmark input clip."""


class TrialExecutionFailed(PassthroughTestError):
    """A trial's ffmpeg process could not be run."""


class FallbackExecutionFailed(PassthroughTestError):
    """The VAAPI fallback for a failed QSV trial also failed."""

    def __init__(self, name: str, return_code: int, elapsed: float):
        self.return_code = return_code
        self.elapsed = elapsed
        super().__init__(f"{name} failed with code {return_code}")


class MonitorFailure(PassthroughTestError):
    """The GPU monitor sidecar could not be started or stopped."""


class DownloadFailed(PassthroughTestError):
    """A sample video could not be downloaded."""


class InvalidTestParameters(PassthroughTestError, ValueError):
    """Benchmark duration or resolution is out of range or malformed."""
