from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import tomlkit
import yaml
from pydantic import BaseModel, ConfigDict, Field
from tomlkit.exceptions import TOMLKitError

from gimtex.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from gimtex.config import FileRecord

MAX_LISTED_DEPENDENCIES = 15

# (marker relative to the root, label); a trailing "/" marks a directory.
STACK_MARKERS: tuple[tuple[str, str], ...] = (
    ("pyproject.toml", "Python"),
    ("setup.py", "Python"),
    ("setup.cfg", "Python"),
    ("requirements.txt", "Python"),
    ("Pipfile", "Python"),
    ("uv.lock", "uv"),
    ("poetry.lock", "Poetry"),
    ("package.json", "Node.js"),
    ("package-lock.json", "npm"),
    ("yarn.lock", "Yarn"),
    ("pnpm-lock.yaml", "pnpm"),
    ("tsconfig.json", "TypeScript"),
    ("Cargo.toml", "Rust"),
    ("go.mod", "Go"),
    ("pom.xml", "Java (Maven)"),
    ("build.gradle", "Gradle"),
    ("build.gradle.kts", "Gradle"),
    ("Gemfile", "Ruby"),
    ("composer.json", "PHP"),
    ("Dockerfile", "Docker"),
    ("docker-compose.yml", "Docker"),
    ("compose.yaml", "Docker"),
    ("Makefile", "Make"),
    (".github/workflows/", "GitHub Actions"),
    (".pre-commit-config.yaml", "pre-commit"),
    (".pre-commit-config.yml", "pre-commit"),
)

STACK_SUFFIX_MARKERS: tuple[tuple[str, str], ...] = (
    (".csproj", ".NET"),
    (".sln", ".NET"),
)


class StackSummary(BaseModel):
    """Detected technology labels plus human-readable manifest details."""

    model_config = ConfigDict(frozen=True)

    labels: list[str] = Field(default_factory=list)
    details: list[str] = Field(default_factory=list)


def build_tree_lines(root_name: str, entries: Sequence[tuple[str, str]]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        entries (Sequence[tuple[str, str]]): `(relative POSIX path, marker)`
            pairs; a non-empty marker is shown next to the file name

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    markers: dict[str, str] = {}
    for rel, marker in entries:
        rp = rel.strip("/").replace("\\", "/")
        if rp:
            markers[rp] = marker
    tree: dict[str, Any] = {}
    for rp in sorted(markers, key=str.lower):
        cur = tree
        parts = rp.split("/")
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                cur.setdefault("__files__", {})[part] = markers[rp]
            else:
                cur = cur.setdefault(part, {})

    lines: list[str] = [root_name]

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted([k for k in node if k != "__files__"], key=str.lower)
        files: dict[str, str] = node.get("__files__", {})
        entries_: list[tuple[str, str, Any]] = []
        entries_.extend(("dir", d, node[d]) for d in dirs)
        entries_.extend(("file", f, files[f]) for f in sorted(files, key=str.lower))
        for idx, (kind, name, child) in enumerate(entries_):
            last = idx == len(entries_) - 1
            branch = "└── " if last else "├── "
            if kind == "dir":
                lines.append(prefix + branch + name + "/")
                walk(child, prefix + ("    " if last else "│   "))
            else:
                lines.append(prefix + branch + name + (f"  [{child}]" if child else ""))

    walk(tree, "")
    return lines


def tree_entries(records: Sequence[FileRecord]) -> list[tuple[str, str]]:
    """Pair each record with its tree marker (binary and skipped files are flagged)."""
    out: list[tuple[str, str]] = []
    for rec in records:
        marker = "binary" if rec.candidate.is_binary else (f"skipped: {rec.skip}" if rec.skip else "")
        out.append((rec.rel, marker))
    return out


def _read_toml(path: Path) -> dict[str, Any]:
    return tomlkit.parse(path.read_text(encoding="utf-8")).unwrap()


def _format_deps(deps: Sequence[str]) -> list[str]:
    lines = [f"  - {d}" for d in deps[:MAX_LISTED_DEPENDENCIES]]
    if len(deps) > MAX_LISTED_DEPENDENCIES:
        lines.append(f"  - … ({len(deps) - MAX_LISTED_DEPENDENCIES} more)")
    return lines


def describe_pyproject(path: Path) -> list[str]:
    """Project name and dependencies from a `pyproject.toml` (PEP 621 or Poetry)."""
    data = _read_toml(path)
    project = data.get("project") or {}
    poetry = (data.get("tool") or {}).get("poetry") or {}
    name = project.get("name") or poetry.get("name") or "unknown"
    deps: list[str] = [str(d) for d in project.get("dependencies") or []]
    if not deps:
        deps = [f"{k}: {v}" for k, v in (poetry.get("dependencies") or {}).items() if k != "python"]
    return [f"Python project: {name}", *_format_deps(deps)]


def describe_cargo(path: Path) -> list[str]:
    """Crate name and dependencies from a `Cargo.toml`."""
    data = _read_toml(path)
    name = (data.get("package") or {}).get("name") or "unknown"
    deps: list[str] = []
    for key, value in (data.get("dependencies") or {}).items():
        version = value if isinstance(value, str) else (value or {}).get("version", "*")
        deps.append(f"{key}: {version}")
    return [f"Rust crate: {name}", *_format_deps(deps)]


def describe_package_json(path: Path) -> list[str]:
    """Package name and dependencies from a `package.json`."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        return []
    name = data.get("name") or "unknown"
    deps = [f"{k}: {v}" for k, v in (data.get("dependencies") or {}).items()]
    return [f"Node.js package: {name}", *_format_deps(deps)]


def summarize_precommit(path: Path) -> list[str]:
    """Summarize the hooks defined in a pre-commit configuration file.

    Args:
        path (Path): the file path to the pre-commit configuration file

    Returns:
        list[str]: `id (repo@rev)` lines, sorted and deduplicated
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    hooks: list[str] = []
    repos = data.get("repos", []) if isinstance(data, dict) else []
    if not isinstance(repos, list):
        repos = []
    for repo in repos:
        if not isinstance(repo, dict):
            continue
        r = str(repo.get("repo", "unknown"))
        rev = str(repo.get("rev", "unknown"))
        hs = repo.get("hooks", [])
        if not isinstance(hs, list):
            continue
        for hk in hs:
            if not isinstance(hk, dict):
                continue
            hid = str(hk.get("id", "unknown"))
            hooks.append(f"{hid} ({r}@{rev})")
    hooks = sorted(set(hooks), key=str.lower)
    return ["pre-commit hooks:", *(f"  - {h}" for h in hooks)] if hooks else []


MANIFEST_DESCRIBERS: dict[str, Callable[[Path], list[str]]] = {
    "pyproject.toml": describe_pyproject,
    "Cargo.toml": describe_cargo,
    "package.json": describe_package_json,
    ".pre-commit-config.yaml": summarize_precommit,
    ".pre-commit-config.yml": summarize_precommit,
}


def detect_stack(root: Path) -> StackSummary:
    """Derive technology labels from top-level marker files.

    This is best effort: unreadable or malformed manifests are logged and
    skipped, and finding nothing is not an error.

    Args:
        root (Path): repository root

    Returns:
        StackSummary: labels in marker order, without duplicates, and details
            read from the manifests
    """
    labels: dict[str, None] = {}
    details: list[str] = []
    for marker, label in STACK_MARKERS:
        target = root / marker.rstrip("/")
        found = target.is_dir() if marker.endswith("/") else target.is_file()
        if not found:
            continue
        labels.setdefault(label, None)
        describe = MANIFEST_DESCRIBERS.get(marker)
        if describe is None:
            continue
        try:
            details.extend(describe(target))
        except (OSError, ValueError, TOMLKitError, yaml.YAMLError) as e:
            logger.warning("manifest_unparsable", path=marker, error=str(e))

    try:
        top_level = sorted(p.name for p in root.iterdir() if p.is_file())
    except OSError as e:
        logger.warning("stack_scan_failed", path=str(root), error=str(e))
        top_level = []
    for suffix, label in STACK_SUFFIX_MARKERS:
        if any(name.endswith(suffix) for name in top_level):
            labels.setdefault(label, None)

    return StackSummary(labels=list(labels), details=details)
