"""Error taxonomy for the image pipeline.

Every error is local to the stage that raised it and fatal to the pipeline.
`classify_failure` maps container engine output onto the taxonomy so callers
can tell a registry hiccup from a compile error without reading the log.
"""

from __future__ import annotations

import re


class PipelineError(Exception):
    """Base class for everything the pipeline raises on purpose."""


class ConfigError(PipelineError):
    pass


class SourceInputError(PipelineError):
    pass


class EngineNotFound(PipelineError):
    pass


class PipelineStateError(PipelineError):
    pass


class StageError(PipelineError):
    """A stage of the image build did not complete."""

    kind = "stage"

    def __init__(self, message: str, *, stage: str, log: str = "") -> None:
        super().__init__(message)
        self.stage = stage
        self.log = log

    @property
    def log_tail(self) -> str:
        return "\n".join(self.log.strip().splitlines()[-20:])


class DependencyResolutionError(StageError):
    kind = "dependency"


class CompileError(StageError):
    kind = "compile"


class ArtifactMissingError(StageError):
    kind = "artifact-missing"


class IdentityCreationError(StageError):
    kind = "identity"


# BuildKit and the legacy builder report a failing RUN differently.
_FAILED_PROCESS = (
    re.compile(r'process "(?P<cmd>.+?)" did not complete successfully'),
    re.compile(r"The command '(?P<cmd>.+?)' returned a non-zero code"),
)

_PACKAGE_MANAGER_MARKERS = ("apk add", "apt-get", "apt ")
_IDENTITY_MARKERS = ("adduser", "useradd")
_BASE_RESOLUTION_MARKERS = (
    "failed to resolve source metadata",
    "pull access denied",
    "manifest unknown",
    "not found: manifest",
)
_NETWORK_MARKERS = (
    "spurious network error",
    "failed to download",
    "failed to get `",
    "could not resolve host",
    "couldn't resolve host",
    "failed to fetch",
)
_COPY_MISSING = (
    re.compile(r"failed to compute cache key.*not found", re.S),
    re.compile(r"COPY failed:.*(no such file|does not exist|not found)", re.S),
)


def _failed_command(log: str) -> str | None:
    for pattern in _FAILED_PROCESS:
        m = pattern.search(log)
        if m:
            return m.group("cmd")
    return None


def classify_failure(stage: str, log: str) -> StageError:
    """Return the error that best describes a failed *stage* given its *log*."""
    lowered = log.lower()

    if any(marker in lowered for marker in _BASE_RESOLUTION_MARKERS):
        return DependencyResolutionError(
            f"{stage}: base environment could not be resolved", stage=stage, log=log
        )

    cmd = _failed_command(log)
    if cmd is not None:
        if any(marker in cmd for marker in _PACKAGE_MANAGER_MARKERS):
            return DependencyResolutionError(
                f"{stage}: package installation failed", stage=stage, log=log
            )
        if any(marker in cmd for marker in _IDENTITY_MARKERS):
            return IdentityCreationError(
                f"{stage}: runtime identity could not be created", stage=stage, log=log
            )
        if any(marker in lowered for marker in _NETWORK_MARKERS):
            return DependencyResolutionError(
                f"{stage}: dependency fetch failed after retries", stage=stage, log=log
            )
        return CompileError(f"{stage}: build command failed: {cmd}", stage=stage, log=log)

    if any(p.search(log) for p in _COPY_MISSING):
        return ArtifactMissingError(
            f"{stage}: compiled artifact not found in the build stage", stage=stage, log=log
        )

    return StageError(f"{stage}: image build failed", stage=stage, log=log)
