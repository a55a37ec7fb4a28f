from __future__ import annotations

from pathlib import Path

import pytest

from gimtex.config import Candidate, FileRecord, SkipReason
from gimtex.summary import (
    MAX_LISTED_DEPENDENCIES,
    build_tree_lines,
    detect_stack,
    summarize_precommit,
    tree_entries,
)


@pytest.mark.unit
def test_build_tree_lines_draws_dirs_before_files() -> None:
    lines = build_tree_lines(
        "repo",
        [("src/pkg/mod.py", ""), ("README.md", ""), ("src/app.py", ""), ("logo.png", "binary")],
    )

    assert lines == [
        "repo",
        "├── src/",
        "│   ├── pkg/",
        "│   │   └── mod.py",
        "│   └── app.py",
        "├── logo.png  [binary]",
        "└── README.md",
    ]


@pytest.mark.unit
def test_tree_entries_flag_binary_and_skipped_records() -> None:
    def rec(rel: str, *, binary: bool = False, skip: SkipReason | None = None) -> FileRecord:
        cand = Candidate(path=Path("/r") / rel, rel=rel, size=1, is_binary=binary)
        return FileRecord(candidate=cand, content=None if skip else "x", skip=skip)

    entries = tree_entries(
        [rec("a.py"), rec("img.png", binary=True, skip=SkipReason.BINARY), rec("big.txt", skip=SkipReason.SIZE)],
    )

    assert entries == [("a.py", ""), ("img.png", "binary"), ("big.txt", "skipped: size")]


@pytest.mark.unit
def test_detect_stack_reads_manifests(make_tree) -> None:
    deps = ", ".join(f'"dep{i}"' for i in range(MAX_LISTED_DEPENDENCIES + 2))
    root = make_tree(
        {
            "pyproject.toml": f'[project]\nname = "demo"\ndependencies = [{deps}]\n',
            "Cargo.toml": '[package]\nname = "crab"\n\n[dependencies]\nserde = { version = "1" }\nrand = "0.8"\n',
            "package.json": '{"name": "web", "dependencies": {"react": "^18"}}',
            "Dockerfile": "FROM python:3.13\n",
            "App.csproj": "<Project/>",
        },
    )

    stack = detect_stack(root)

    assert stack.labels == ["Python", "Node.js", "Rust", "Docker", ".NET"]
    assert "Python project: demo" in stack.details
    assert "  - … (2 more)" in stack.details
    assert "Rust crate: crab" in stack.details
    assert "  - serde: 1" in stack.details
    assert "  - rand: 0.8" in stack.details
    assert "Node.js package: web" in stack.details


@pytest.mark.unit
def test_detect_stack_tolerates_broken_manifests(make_tree) -> None:
    root = make_tree({"pyproject.toml": "[project\nname=", "package.json": "{not json"})

    stack = detect_stack(root)

    assert stack.labels == ["Python", "Node.js"]
    assert stack.details == []


@pytest.mark.unit
def test_detect_stack_on_empty_directory(tmp_path: Path) -> None:
    stack = detect_stack(tmp_path)

    assert stack.labels == []
    assert stack.details == []


@pytest.mark.unit
def test_summarize_precommit(tmp_path: Path) -> None:
    cfg = tmp_path / ".pre-commit-config.yaml"
    cfg.write_text(
        "repos:\n"
        "  - repo: https://github.com/astral-sh/ruff-pre-commit\n"
        "    rev: v0.6.0\n"
        "    hooks:\n"
        "      - id: ruff\n"
        "      - id: ruff-format\n",
        encoding="utf-8",
    )

    assert summarize_precommit(cfg) == [
        "pre-commit hooks:",
        "  - ruff (https://github.com/astral-sh/ruff-pre-commit@v0.6.0)",
        "  - ruff-format (https://github.com/astral-sh/ruff-pre-commit@v0.6.0)",
    ]
