from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field

_ = Path()


class FileType(StrEnum):
    """Categorization of file types for rendering purposes.

    This is a heuristic classification based on file extensions, used to pick
    the code fence language and to flag well-known binary formats.
    """

    TEXT = auto()
    BINARY = auto()
    IMAGE = auto()
    PYTHON = auto()
    TOML = auto()
    JSON = auto()
    MARKDOWN = auto()
    YAML = auto()
    HTML = auto()
    CSS = auto()
    JAVASCRIPT = auto()
    TYPESCRIPT = auto()
    BASH = auto()
    RUST = auto()
    GO = auto()
    PHP = auto()
    SQL = auto()
    JAVA = auto()
    KOTLIN = auto()
    RUBY = auto()
    CSHARP = auto()
    C = auto()
    CPP = auto()
    XML = auto()
    INI = auto()
    PEM = auto()
    DOCKERFILE = auto()
    MAKEFILE = auto()
    OTHER = auto()


EXT2LANG: dict[str, FileType] = {
    ".7z": FileType.BINARY,
    ".bash": FileType.BASH,
    ".bin": FileType.BINARY,
    ".bmp": FileType.IMAGE,
    ".c": FileType.C,
    ".cc": FileType.CPP,
    ".cfg": FileType.INI,
    ".class": FileType.BINARY,
    ".conf": FileType.INI,
    ".cpp": FileType.CPP,
    ".crt": FileType.PEM,
    ".cs": FileType.CSHARP,
    ".css": FileType.CSS,
    ".cxx": FileType.CPP,
    ".dll": FileType.BINARY,
    ".dylib": FileType.BINARY,
    ".exe": FileType.BINARY,
    ".gif": FileType.IMAGE,
    ".go": FileType.GO,
    ".gz": FileType.BINARY,
    ".h": FileType.C,
    ".hpp": FileType.CPP,
    ".htm": FileType.HTML,
    ".html": FileType.HTML,
    ".ico": FileType.IMAGE,
    ".ini": FileType.INI,
    ".jar": FileType.BINARY,
    ".java": FileType.JAVA,
    ".jpeg": FileType.IMAGE,
    ".jpg": FileType.IMAGE,
    ".js": FileType.JAVASCRIPT,
    ".json": FileType.JSON,
    ".jsx": FileType.JAVASCRIPT,
    ".key": FileType.PEM,
    ".kt": FileType.KOTLIN,
    ".markdown": FileType.MARKDOWN,
    ".md": FileType.MARKDOWN,
    ".mjs": FileType.JAVASCRIPT,
    ".mp3": FileType.BINARY,
    ".mp4": FileType.BINARY,
    ".o": FileType.BINARY,
    ".pdf": FileType.BINARY,
    ".pem": FileType.PEM,
    ".php": FileType.PHP,
    ".png": FileType.IMAGE,
    ".py": FileType.PYTHON,
    ".pyc": FileType.BINARY,
    ".rb": FileType.RUBY,
    ".rs": FileType.RUST,
    ".sh": FileType.BASH,
    ".so": FileType.BINARY,
    ".sql": FileType.SQL,
    ".sqlite": FileType.BINARY,
    ".sqlite3": FileType.BINARY,
    ".svg": FileType.XML,
    ".tar": FileType.BINARY,
    ".toml": FileType.TOML,
    ".ts": FileType.TYPESCRIPT,
    ".tsx": FileType.TYPESCRIPT,
    ".ttf": FileType.BINARY,
    ".txt": FileType.TEXT,
    ".wasm": FileType.BINARY,
    ".webp": FileType.IMAGE,
    ".woff": FileType.BINARY,
    ".woff2": FileType.BINARY,
    ".xml": FileType.XML,
    ".yaml": FileType.YAML,
    ".yml": FileType.YAML,
    ".zip": FileType.BINARY,
    ".zsh": FileType.BASH,
}

NAME2LANG: dict[str, FileType] = {
    "dockerfile": FileType.DOCKERFILE,
    "makefile": FileType.MAKEFILE,
    "gnumakefile": FileType.MAKEFILE,
}

_FENCE_LANGUAGE: dict[FileType, str] = {
    FileType.PYTHON: "python",
    FileType.TOML: "toml",
    FileType.JSON: "json",
    FileType.MARKDOWN: "markdown",
    FileType.YAML: "yaml",
    FileType.HTML: "html",
    FileType.CSS: "css",
    FileType.JAVASCRIPT: "javascript",
    FileType.TYPESCRIPT: "typescript",
    FileType.BASH: "bash",
    FileType.RUST: "rust",
    FileType.GO: "go",
    FileType.PHP: "php",
    FileType.SQL: "sql",
    FileType.JAVA: "java",
    FileType.KOTLIN: "kotlin",
    FileType.RUBY: "ruby",
    FileType.CSHARP: "csharp",
    FileType.C: "c",
    FileType.CPP: "cpp",
    FileType.XML: "xml",
    FileType.INI: "ini",
    FileType.DOCKERFILE: "dockerfile",
    FileType.MAKEFILE: "makefile",
}

BINARY_FILE_TYPES = frozenset({FileType.IMAGE, FileType.BINARY})

# gitwildmatch patterns, evaluated before any repository ignore file.
BUILTIN_IGNORES: tuple[str, ...] = (
    ".git/",
    ".hg/",
    ".svn/",
    "node_modules/",
    "vendor/",
    ".venv/",
    "venv/",
    "target/",
    "dist/",
    "build/",
    ".next/",
    "__pycache__/",
    ".mypy_cache/",
    ".ruff_cache/",
    ".pytest_cache/",
    ".tox/",
    ".ipynb_checkpoints/",
    ".idea/",
    ".vscode/",
    ".DS_Store",
)

DEFAULT_MAX_BYTES = 100_000
BINARY_SNIFF_BYTES = 8192


def guess_file_type(path: Path) -> FileType:
    """Heuristic guess of file type based on file name, then extension.

    Args:
        path (Path): The file path to guess the type for.

    Returns:
        FileType: The guessed file type, or FileType.OTHER if unknown.
    """
    by_name = NAME2LANG.get(path.name.lower())
    if by_name is not None:
        return by_name
    return EXT2LANG.get(path.suffix.lower(), FileType.OTHER)


def guess_language(file_type: FileType) -> str:
    """Get the suggested code fence language for a given file type.

    Args:
        file_type (FileType): The categorized file type.

    Returns:
        str: The suggested language name for code fences, or empty string if none.
    """
    return _FENCE_LANGUAGE.get(file_type, "")


class RuleSource(StrEnum):
    """Origin layer of an ignore rule."""

    BUILTIN = auto()
    VCS = auto()
    USER = auto()


class CandidateSource(StrEnum):
    """How a candidate entered the selection."""

    TREE = auto()
    DIFF = auto()
    PICK = auto()


class SkipReason(StrEnum):
    """Why a file record carries no content."""

    SIZE = auto()
    BINARY = auto()
    UNREADABLE = auto()
    DECODE = auto()
    RENDER = auto()


class SelectionMode(StrEnum):
    """Mutually exclusive ways of choosing candidates."""

    TREE = auto()
    DIFF = auto()
    INTERACTIVE = auto()


class OutputProtocol(StrEnum):
    """Rendering protocol of the output document."""

    MARKDOWN = auto()
    XML = auto()


class Candidate(BaseModel):
    """A file considered for inclusion, before its content is loaded.

    Attributes:
        path: Absolute path to the file on disk.
        rel: POSIX path relative to the repository root.
        size: File size in bytes.
        is_binary: NUL byte in the sniffed prefix, or a known binary extension.
        source: Selection mode that produced the candidate.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to repository root")
    size: int = Field(..., ge=0, description="File size in bytes")
    is_binary: bool = Field(default=False, description="Binary heuristic result")
    source: CandidateSource = Field(default=CandidateSource.TREE)

    @computed_field
    @property
    def file_type(self) -> FileType:
        """Categorize the file type based on name and extension."""
        return guess_file_type(self.path)

    @computed_field
    @property
    def language(self) -> str:
        """Get the suggested code fence language based on the file type."""
        return guess_language(self.file_type)

    def is_too_big(self, max_bytes: int | None) -> bool:
        """Whether the file exceeds the size ceiling (None means no ceiling)."""
        if max_bytes is None:
            return False
        return self.size > max_bytes


class FileRecord(BaseModel):
    """A candidate plus its loaded, redacted and counted content.

    Exactly one of `content` and `skip` is set. Skipped records carry no
    content and count zero tokens; `detail` explains the skip.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    candidate: Candidate
    content: str | None = None
    skip: SkipReason | None = None
    detail: str = ""
    tokens: int = Field(default=0, ge=0)
    redactions: dict[str, int] = Field(default_factory=dict)

    @property
    def rel(self) -> str:
        return self.candidate.rel

    @property
    def redaction_count(self) -> int:
        return sum(self.redactions.values())

    def skip_marker(self) -> str:
        """Human readable placeholder used in the tree and in rendered output."""
        if self.skip is None:
            return ""
        marker = f"skipped: {self.skip}"
        return f"{marker} ({self.detail})" if self.detail else marker
