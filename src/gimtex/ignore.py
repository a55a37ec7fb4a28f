"""Layered ignore rules.

Three exclusion layers are evaluated in order: built-in defaults, the
repository's git ignore files, then `ignore:` globs from configuration. A layer
with a matching rule overrides the verdict of the layers before it; inside a
layer the last matching rule wins, so `!pattern` re-includes. User `--filter`
globs are not a layer but a final inclusion gate: when present, a path must
match one of them as well.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from pathspec import GitIgnoreSpec
from pydantic import BaseModel, ConfigDict

from gimtex.config import BUILTIN_IGNORES, RuleSource
from gimtex.exceptions import InvalidGlobError
from gimtex.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class IgnoreRule(BaseModel):
    """One gitwildmatch pattern tagged with the layer it came from."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    source: RuleSource
    origin: str = ""

    @property
    def negated(self) -> bool:
        return self.pattern.startswith("!")


class IgnoreLayer:
    """Compiled rules of one layer; last match wins within the layer."""

    def __init__(self, source: RuleSource, rules: Sequence[IgnoreRule]) -> None:
        self.source = source
        self.rules = list(rules)
        self._spec = GitIgnoreSpec.from_lines([r.pattern for r in self.rules])

    def verdict(self, rel: str) -> bool | None:
        """Return True (excluded), False (re-included) or None (no rule matched)."""
        if not self.rules:
            return None
        return self._spec.check_file(rel).include


class IgnoreResolver:
    """Pure decision function over repository-relative POSIX paths."""

    def __init__(
        self,
        layers: Sequence[IgnoreLayer],
        filters: Sequence[str] = (),
        warnings: Sequence[str] = (),
    ) -> None:
        self.layers = list(layers)
        self.filters = list(filters)
        self.warnings = list(warnings)
        self._filter_spec = GitIgnoreSpec.from_lines(self.filters) if self.filters else None

    @property
    def rules(self) -> list[IgnoreRule]:
        return [rule for layer in self.layers for rule in layer.rules]

    def is_excluded(self, rel: str) -> bool:
        """Evaluate the exclusion layers only, ignoring user filters."""
        excluded = False
        for layer in self.layers:
            verdict = layer.verdict(rel)
            if verdict is not None:
                excluded = verdict
        return excluded

    def should_descend(self, rel_dir: str) -> bool:
        """Whether a directory walk should enter `rel_dir`."""
        rel_dir = rel_dir.strip("/")
        return not rel_dir or not self.is_excluded(rel_dir + "/")

    def should_include(self, rel: str) -> bool:
        """Whether the file at `rel` belongs in the payload.

        A file below an excluded directory stays excluded even if a later
        negation names the file itself, as git does.
        """
        rel = rel.replace("\\", "/").strip("/")
        parts = rel.split("/")
        for depth in range(1, len(parts)):
            if not self.should_descend("/".join(parts[:depth])):
                return False
        if self.is_excluded(rel):
            return False
        if self._filter_spec is not None:
            return self._filter_spec.match_file(rel)
        return True


def check_glob(pattern: str, *, allow_negation: bool = False) -> str:
    """Validate and normalize a user-supplied glob.

    Args:
        pattern (str): the raw glob.
        allow_negation (bool): whether a leading `!` is accepted.

    Raises:
        InvalidGlobError: if the glob is empty, has an unclosed character
            class, is a disallowed negation, or is rejected by gitwildmatch.

    Returns:
        str: the glob with POSIX separators and surrounding whitespace removed.
    """
    glob = (pattern or "").strip().replace("\\", "/")
    if not glob or glob == "!":
        raise InvalidGlobError(pattern=pattern, reason="empty pattern")
    if glob.startswith("!") and not allow_negation:
        raise InvalidGlobError(pattern=pattern, reason="negation is not supported here")
    if glob.startswith("#"):
        raise InvalidGlobError(pattern=pattern, reason="pattern would be read as a comment")
    depth_open = -1
    for i, ch in enumerate(glob):
        if ch == "[" and depth_open < 0:
            depth_open = i
        elif ch == "]" and depth_open >= 0 and i > depth_open + 1:
            depth_open = -1
    if depth_open >= 0:
        raise InvalidGlobError(pattern=pattern, reason="unclosed character class")
    try:
        GitIgnoreSpec.from_lines([glob])
    except ValueError as e:
        raise InvalidGlobError(pattern=pattern, reason=str(e)) from e
    return glob


def rebase_pattern(line: str, base: str) -> str:
    """Rewrite a `.gitignore` line found in directory `base` relative to the root.

    Args:
        line (str): pattern as written in the nested ignore file.
        base (str): POSIX directory of that file, relative to the root ("" for root).

    Returns:
        str: equivalent pattern anchored at the repository root.
    """
    if not base:
        return line
    negated = line.startswith("!")
    body = line[1:] if negated else line
    if body.startswith("/"):
        rebased = f"{base}{body}"
    elif "/" in body.rstrip("/"):
        rebased = f"{base}/{body}"
    else:
        rebased = f"{base}/**/{body}"
    return f"!{rebased}" if negated else rebased


def _pattern_lines(text: str) -> list[str]:
    out: list[str] = []
    for raw in text.splitlines():
        line = raw.rstrip("\r")
        if not line.strip() or line.startswith("#"):
            continue
        out.append(line.rstrip() if not line.endswith("\\ ") else line)
    return out


def _read_patterns(root: Path, path: Path) -> list[str]:
    base = "" if path.name == "exclude" else path.parent.relative_to(root).as_posix()
    base = "" if base == "." else base
    patterns = [rebase_pattern(line, base) for line in _pattern_lines(path.read_text(encoding="utf-8"))]
    GitIgnoreSpec.from_lines(patterns)
    return patterns


def _pruning_rules(root: Path, path: Path) -> list[IgnoreRule]:
    try:
        patterns = _read_patterns(root, path)
    except (OSError, UnicodeDecodeError, ValueError):
        # reported by load_vcs_rules
        return []
    return [IgnoreRule(pattern=p, source=RuleSource.VCS) for p in patterns]


def find_ignore_files(root: Path, builtin: IgnoreLayer) -> list[Path]:
    """Locate git ignore files under `root`, lowest precedence first.

    `.git/info/exclude` comes first, then `.gitignore` files ordered by depth so
    that deeper (more specific) files override shallower ones. Directories
    excluded by the built-in rules or by an ignore file above them are not
    entered, as git does not enter them either.
    """
    found: list[Path] = []
    rules: list[IgnoreRule] = []
    info_exclude = root / ".git" / "info" / "exclude"
    if info_exclude.is_file():
        found.append(info_exclude)
        rules.extend(_pruning_rules(root, info_exclude))
    pruner = IgnoreResolver([builtin, IgnoreLayer(RuleSource.VCS, rules)])
    nested: list[Path] = []
    for dirpath, dirs, files in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir
        if ".gitignore" in files:
            path = Path(dirpath) / ".gitignore"
            nested.append(path)
            rules.extend(_pruning_rules(root, path))
            pruner = IgnoreResolver([builtin, IgnoreLayer(RuleSource.VCS, rules)])
        dirs[:] = sorted(d for d in dirs if pruner.should_descend(f"{rel_dir}/{d}"))
    nested.sort(key=lambda p: (len(p.relative_to(root).parts), p.as_posix()))
    found.extend(nested)
    return found


def load_vcs_rules(root: Path, files: Iterable[Path]) -> tuple[list[IgnoreRule], list[str]]:
    """Read ignore files into rules; unreadable or malformed files are skipped.

    Args:
        root (Path): repository root.
        files (Iterable[Path]): ignore files, lowest precedence first.

    Returns:
        tuple[list[IgnoreRule], list[str]]: the rules and the warnings raised
            while reading them.
    """
    rules: list[IgnoreRule] = []
    warnings: list[str] = []
    for path in files:
        origin = path.relative_to(root).as_posix()
        try:
            patterns = _read_patterns(root, path)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            warning = f"ignoring {origin}: {e}"
            logger.warning("ignore_file_skipped", path=origin, error=str(e))
            warnings.append(warning)
            continue
        rules.extend(IgnoreRule(pattern=p, source=RuleSource.VCS, origin=origin) for p in patterns)
    return rules, warnings


def build_resolver(
    root: Path,
    filters: Sequence[str] = (),
    extra_ignores: Sequence[str] = (),
) -> IgnoreResolver:
    """Compile the ignore layers for `root` into a resolver.

    Args:
        root (Path): repository root.
        filters (Sequence[str]): user inclusion globs (`--filter`).
        extra_ignores (Sequence[str]): user exclusion globs (`ignore:` config).

    Raises:
        InvalidGlobError: if a user glob is malformed. Raised before any
            filesystem access.

    Returns:
        IgnoreResolver: the resolver.
    """
    checked_filters = [check_glob(f) for f in filters]
    user_rules = [
        IgnoreRule(pattern=check_glob(g, allow_negation=True), source=RuleSource.USER, origin="config")
        for g in extra_ignores
    ]

    builtin = IgnoreLayer(
        RuleSource.BUILTIN,
        [IgnoreRule(pattern=p, source=RuleSource.BUILTIN, origin="builtin") for p in BUILTIN_IGNORES],
    )
    vcs_rules, warnings = load_vcs_rules(root, find_ignore_files(root, builtin))
    layers = [builtin, IgnoreLayer(RuleSource.VCS, vcs_rules), IgnoreLayer(RuleSource.USER, user_rules)]
    logger.debug(
        "ignore_rules_compiled",
        builtin=len(builtin.rules),
        vcs=len(vcs_rules),
        user=len(user_rules),
        filters=len(checked_filters),
    )
    return IgnoreResolver(layers, filters=checked_filters, warnings=warnings)
