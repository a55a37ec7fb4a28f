from __future__ import annotations

import os
import stat
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from gimtex.config import BINARY_FILE_TYPES, BINARY_SNIFF_BYTES, Candidate, CandidateSource, guess_file_type
from gimtex.exceptions import ResolutionWarning
from gimtex.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gimtex.ignore import IgnoreResolver


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular (symlinks are followed).

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
    except OSError:
        return False
    return stat.S_ISREG(st.st_mode)


def sniff_binary(path: Path, nbytes: int = BINARY_SNIFF_BYTES) -> bool:
    """Check if path points to a binary file.

    A file is binary when its extension is a known binary format or when a NUL
    byte shows up in its first `nbytes` bytes. Unreadable files are reported as
    text here; the read failure surfaces when the content is loaded.

    Args:
        path (Path): path to test.
        nbytes (int, optional): number of bytes to sniff. Defaults to 8 KiB.

    Returns:
        bool: True if the file looks binary.
    """
    if guess_file_type(path) in BINARY_FILE_TYPES:
        return True
    try:
        with path.open("rb") as f:
            chunk = f.read(nbytes)
    except OSError:
        return False
    return b"\x00" in chunk


def walk_files(root: Path, resolver: IgnoreResolver) -> list[Path]:
    """Walk the directory tree rooted at `root`, pruning excluded directories.

    Symlinked directories are not followed. Only files accepted by the
    resolver are returned; the order is not significant.

    Args:
        root (Path): the root directory to walk
        resolver (IgnoreResolver): ignore rules for the repository

    Returns:
        list[Path]: files accepted by the resolver
    """
    results: list[Path] = []

    def on_error(err: OSError) -> None:
        logger.warning("walk_error", path=str(err.filename), error=err.strerror)

    for dirpath, dirs, files in os.walk(root, onerror=on_error):
        current = Path(dirpath)
        rel_dir = relpath(current, root)
        rel_dir = "" if rel_dir == "." else rel_dir
        prefix = f"{rel_dir}/" if rel_dir else ""
        dirs[:] = [d for d in dirs if resolver.should_descend(prefix + d)]
        for f in files:
            p = current / f
            if resolver.should_include(prefix + f) and is_regular_file(p):
                results.append(p)
    return results


def make_candidate(path: Path, root: Path, source: CandidateSource) -> Candidate | None:
    """Stat and sniff one file into a Candidate; None when it vanished or cannot be stat'ed."""
    try:
        size = path.stat().st_size
    except OSError as e:
        logger.warning("candidate_stat_failed", path=str(path), error=str(e))
        return None
    return Candidate(
        path=path,
        rel=relpath(path, root),
        size=size,
        is_binary=sniff_binary(path),
        source=source,
    )


def make_candidates(
    files: Sequence[Path],
    root: Path,
    source: CandidateSource,
    *,
    max_workers: int | None = None,
) -> list[Candidate]:
    """Create Candidates for `files`, sorted by relative path.

    Stat and sniff calls run in a thread pool; `Executor.map` keeps input order
    and the final sort makes the result independent of the input order too.

    Args:
        files (Sequence[Path]): absolute paths
        root (Path): repository root
        source (CandidateSource): selection mode tag
        max_workers (int | None): pool size, None for the executor default

    Returns:
        list[Candidate]: candidates in lexicographic relative-path order
    """
    build = partial(make_candidate, root=root, source=source)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        cands = [c for c in pool.map(build, files) if c is not None]
    return sorted(cands, key=lambda c: c.rel)


def load_text(path: Path, rel: str) -> str:
    """Read a candidate as UTF-8 text.

    Args:
        path (Path): file to read
        rel (str): relative path, for reporting

    Raises:
        ResolutionWarning: when the file cannot be read (kind "unreadable") or
            is not valid UTF-8 (kind "decode").

    Returns:
        str: the file content, with a UTF-8 BOM removed and newlines normalized to "\\n"
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ResolutionWarning(path=rel, reason=e.strerror or str(e), kind="unreadable") from e
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        reason = f"not valid UTF-8 at byte {e.start}"
        raise ResolutionWarning(path=rel, reason=reason, kind="decode") from e
    return text.replace("\r\n", "\n")

