from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


class WordCounter:
    """Stand-in for TokenCounter that needs no encoding download."""

    def __init__(self, encoding: str = "words") -> None:
        self.encoding_name = encoding

    def count(self, content: str) -> int:
        return len(content.split())


@pytest.fixture
def word_counter(mocker: MockerFixture) -> type[WordCounter]:
    mocker.patch("gimtex.pipeline.TokenCounter", WordCounter)
    return WordCounter


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop GIMTEX_* variables and the discovered .env file."""
    for key in list(os.environ):
        if key.startswith("GIMTEX_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr("gimtex.settings.ENV_FILE", "")


def git(repo: Path, *args: str) -> str:
    out = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],  # noqa: S607
        cwd=str(repo),
        text=True,
        capture_output=True,
        check=True,
    )
    return out.stdout


@pytest.fixture
def git_cmd():
    """The `git` helper, for tests that change the repository."""
    return git


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A git repository with four committed Python files."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    for name in ("a.py", "b.py", "c.py", "untouched.py"):
        (repo / name).write_text(f"print({name!r})\n", encoding="utf-8")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")
    return repo


@pytest.fixture
def make_tree(tmp_path: Path):
    """Write `{relative path: content}` under tmp_path and return tmp_path."""

    def _make(files: dict[str, str | bytes], root: Path | None = None) -> Path:
        base = root or tmp_path
        for rel, content in files.items():
            path = base / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8", newline="")
        return base

    return _make
