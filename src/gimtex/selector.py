"""Candidate selection: full tree walk, git diff state, or an interactive pick."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from gimtex.config import Candidate, CandidateSource, SelectionMode
from gimtex.exceptions import InvalidConfigError, SelectionCancelledError
from gimtex.file_manipulation import is_regular_file, make_candidates, walk_files
from gimtex.git import changed_files
from gimtex.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from gimtex.ignore import IgnoreResolver

    Picker = Callable[[Sequence[Candidate]], Sequence[Candidate | str] | None]


class Selection(BaseModel):
    """Ordered candidates produced by one selection mode."""

    model_config = ConfigDict(frozen=True)

    mode: SelectionMode
    candidates: list[Candidate] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def select_tree(root: Path, resolver: IgnoreResolver, *, max_workers: int | None = None) -> list[Candidate]:
    """Walk `root` and return every accepted regular file, in relative-path order."""
    files = walk_files(root, resolver)
    return make_candidates(files, root, CandidateSource.TREE, max_workers=max_workers)


def select_diff(root: Path, resolver: IgnoreResolver, *, max_workers: int | None = None) -> list[Candidate]:
    """Return staged and modified files that still pass the ignore rules.

    Raises:
        NotAGitRepositoryError: if `root` is not inside a git work tree.
        GitCommandError: if a git query fails.
    """
    changed = changed_files(root)
    kept = [rel for rel in changed if resolver.should_include(rel)]
    files = [root / rel for rel in kept if is_regular_file(root / rel)]
    if len(files) != len(changed):
        logger.info("diff_paths_filtered", changed=len(changed), kept=len(files))
    return make_candidates(files, root, CandidateSource.DIFF, max_workers=max_workers)


def apply_pick(
    candidates: Sequence[Candidate],
    picked: Sequence[Candidate | str],
) -> tuple[list[Candidate], list[str]]:
    """Restrict `candidates` to the picked entries, keeping tree order.

    Args:
        candidates (Sequence[Candidate]): the list that was offered.
        picked (Sequence[Candidate | str]): candidates or relative paths chosen.

    Returns:
        tuple[list[Candidate], list[str]]: the kept candidates, re-tagged as
            picked, and warnings for entries that were never offered.
    """
    wanted = {p.rel if isinstance(p, Candidate) else str(p) for p in picked}
    offered = {c.rel for c in candidates}
    warnings = [f"picked path was not offered: {rel}" for rel in sorted(wanted - offered)]
    for w in warnings:
        logger.warning("pick_unknown_path", detail=w)
    kept = [c.model_copy(update={"source": CandidateSource.PICK}) for c in candidates if c.rel in wanted]
    return kept, warnings


def select_candidates(
    root: Path,
    resolver: IgnoreResolver,
    mode: SelectionMode,
    *,
    picker: Picker | None = None,
    max_workers: int | None = None,
) -> Selection:
    """Produce the ordered candidate set for the chosen selection mode.

    Args:
        root (Path): repository root
        resolver (IgnoreResolver): ignore rules
        mode (SelectionMode): tree, diff or interactive
        picker (Picker | None): interactive selection capability, required in
            interactive mode
        max_workers (int | None): pool size for stat/sniff work

    Raises:
        InvalidConfigError: interactive mode without a picker.
        SelectionCancelledError: the picker returned nothing.
        NotAGitRepositoryError: diff mode outside a git work tree.

    Returns:
        Selection: candidates in lexicographic relative-path order
    """
    warnings: list[str] = []
    if mode is SelectionMode.DIFF:
        candidates = select_diff(root, resolver, max_workers=max_workers)
    elif mode is SelectionMode.INTERACTIVE:
        if picker is None:
            raise InvalidConfigError(source="selection", message="interactive mode needs a picker")
        offered = select_tree(root, resolver, max_workers=max_workers)
        picked = picker(offered)
        if not picked:
            raise SelectionCancelledError
        candidates, warnings = apply_pick(offered, picked)
        if not candidates:
            raise SelectionCancelledError
    else:
        candidates = select_tree(root, resolver, max_workers=max_workers)

    logger.info("candidates_selected", mode=str(mode), count=len(candidates))
    return Selection(mode=mode, candidates=candidates, warnings=warnings)
