from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class GimtexError(Exception):
    """Base exception for errors in the gimtex package."""


@dataclass(frozen=True)
class ConfigurationError(GimtexError):
    """Run-level configuration problem. Always fatal, raised before any traversal."""


@dataclass(frozen=True)
class InvalidGlobError(ConfigurationError):
    """Raised when a user-supplied filter glob cannot be compiled."""

    pattern: str
    reason: str

    def __str__(self) -> str:
        return f"invalid filter glob {self.pattern!r}: {self.reason}"


@dataclass(frozen=True)
class InvalidConfigError(ConfigurationError):
    """Raised when a configuration source holds unknown keys or bad values."""

    source: str
    message: str

    def __str__(self) -> str:
        return f"invalid configuration in {self.source}: {self.message}"


@dataclass(frozen=True)
class NotAGitRepositoryError(ConfigurationError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path
    message: str = "The specified directory is not a Git repository."

    def __str__(self) -> str:
        return f"{self.message} ({self.folder})"


@dataclass(frozen=True)
class GitCommandError(ConfigurationError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        return f"`{self.command}` exited with {self.returncode}: {self.stderr.strip()}"


@dataclass(frozen=True)
class SelectionCancelledError(GimtexError):
    """Raised when the interactive picker returns no selection."""

    def __str__(self) -> str:
        return "selection cancelled"


@dataclass(frozen=True)
class ResolutionWarning(GimtexError):
    """Non-fatal failure to read an ignore file or a candidate.

    `kind` names the skip reason recorded for a candidate ("unreadable" or "decode").
    """

    path: str
    reason: str
    kind: str = "unreadable"

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass(frozen=True)
class RenderError(GimtexError):
    """Raised when a file body cannot be represented in the target protocol."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"cannot render {self.path}: {self.reason}"
