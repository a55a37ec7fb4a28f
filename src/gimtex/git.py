from __future__ import annotations

import shutil
import subprocess  # noqa: S404
from pathlib import Path

from gimtex.exceptions import GitCommandError, NotAGitRepositoryError
from gimtex.logging import logger


def run_git(repo: Path, *args: str) -> str:
    """Run a git command in `repo` and return its stdout.

    Args:
        repo (Path): working directory for the command
        *args (str): git arguments

    Raises:
        NotAGitRepositoryError: if git is not installed.
        GitCommandError: if the command exits with a non-zero status.

    Returns:
        str: the command's standard output
    """
    git = shutil.which("git")
    if git is None:
        raise NotAGitRepositoryError(folder=repo, message="git executable not found on PATH.")
    out = subprocess.run(  # noqa: S603
        [git, *args],
        cwd=str(repo),
        text=True,
        capture_output=True,
        check=False,
    )
    if out.returncode != 0:
        raise GitCommandError(
            command=" ".join(["git", *args]),
            returncode=out.returncode,
            stdout=out.stdout,
            stderr=out.stderr,
        )
    return out.stdout


def ensure_git_repository(repo: Path) -> None:
    """Check that `repo` lies inside a git work tree.

    Raises:
        NotAGitRepositoryError: if no git metadata can be found for `repo`.
    """
    try:
        inside = run_git(repo, "rev-parse", "--is-inside-work-tree").strip()
    except GitCommandError as e:
        raise NotAGitRepositoryError(folder=repo) from e
    if inside != "true":
        raise NotAGitRepositoryError(folder=repo)


def _name_list(output: str) -> list[str]:
    return [p for p in output.split("\0") if p]


def changed_files(repo: Path) -> list[str]:
    """List files staged or modified relative to the current commit.

    Staged changes come from `git diff --cached`, unstaged ones from
    `git diff`; both are restricted to `repo` and reported relative to it.
    Deleted files are left out. In a repository without commits, every staged
    file counts as changed (`--cached` then compares against the empty tree).

    Args:
        repo (Path): repository root (or a sub-directory of a work tree)

    Raises:
        NotAGitRepositoryError: if `repo` is not inside a git work tree.
        GitCommandError: if a git query fails.

    Returns:
        list[str]: POSIX paths relative to `repo`, deduplicated, in first-seen order
    """
    ensure_git_repository(repo)
    base = ["diff", "--name-only", "-z", "--relative", "--diff-filter=d"]
    staged = run_git(repo, *base, "--cached")
    unstaged = run_git(repo, *base)
    seen: dict[str, None] = {}
    for rel in [*_name_list(staged), *_name_list(unstaged)]:
        seen.setdefault(rel, None)
    logger.info("git_changed_files", staged=len(_name_list(staged)), total=len(seen))
    return list(seen)
