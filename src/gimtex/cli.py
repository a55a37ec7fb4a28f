"""
gimtex: turn a local repository into a bounded, sanitized LLM prompt payload.

Overview
--------
The command walks a repository (or only its git changes, or a hand-picked
subset), honors built-in, `.gitignore` and user ignore rules, redacts secrets,
counts tokens and renders everything as one markdown or XML document.

1) **Markdown (`--format markdown`)**: header, stack summary, file tree,
   token budget, then one fenced block per file.

2) **XML (`--format xml`)**: the same content as `<repository>` markup with
   one `<file path=...>` element per file.

The payload goes to stdout, or to `--output FILE`. A summary line (files,
tokens, tier) goes to stderr; logs go to stderr or `--log-file`.

Usage
-----
Run `python -m gimtex.cli --help` for full options. Common examples:
    - Whole repository as markdown:
        gimtex . > context.md

    - Only staged and modified files, numbered, as XML:
        gimtex --diff -n --format xml --output changes.xml

    - Only Python sources, interactively narrowed down:
        gimtex --filter "**/*.py" --interactive
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gimtex import __version__
from gimtex.config import OutputProtocol
from gimtex.exceptions import ConfigurationError, SelectionCancelledError
from gimtex.logging import setup_logging
from gimtex.pipeline import run
from gimtex.settings import build_settings

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from gimtex.config import Candidate
    from gimtex.settings import Settings

EXIT_OK = 0
EXIT_CANCELLED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gimtex",
        description="Export a repository as a sanitized, token-counted LLM context payload.",
    )
    p.add_argument("path", nargs="?", default=None, help="Repository root (default: cwd).")
    p.add_argument("--repo", type=str, default=None, help="Repository root, same as PATH.")
    p.add_argument("-o", "--output", type=str, default=None, help="Output file (default: stdout).")
    p.add_argument(
        "-f",
        "--format",
        type=str,
        choices=[str(x) for x in OutputProtocol],
        default=None,
        help="Output protocol.",
    )
    p.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=None,
        help="Inclusion glob; files must match at least one (repeatable).",
    )
    p.add_argument(
        "--ignore",
        action="append",
        default=None,
        help="Extra exclusion glob (repeatable).",
    )

    mode = p.add_mutually_exclusive_group()
    mode.add_argument(
        "--diff",
        action="store_true",
        default=None,
        help="Only staged and modified files (git).",
    )
    mode.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        default=None,
        help="Pick files from a numbered list.",
    )

    p.add_argument(
        "-n",
        "--line-numbers",
        action="store_true",
        default=None,
        help="Prefix content lines with their number.",
    )
    p.add_argument("--max-bytes", type=int, default=None, help="Files above are skipped (default 100000).")
    p.add_argument("--yellow", type=int, default=None, help="Token total where the tier turns yellow.")
    p.add_argument("--red", type=int, default=None, help="Token total where the tier turns red.")
    p.add_argument("--context-window", type=int, default=None, help="Context window used for the share figure.")
    p.add_argument("--workers", type=int, default=None, help="Worker pool size.")
    p.add_argument("--encoding", type=str, default=None, help="tiktoken encoding name.")
    p.add_argument("--config", type=str, default=None, help="YAML config file (default: .gimtex.yaml in the repo).")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    p.add_argument("-v", "--verbose", action="store_true", default=None, help="Debug logging.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def cli_values(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed arguments onto Settings fields; unset options stay None."""
    values = vars(args).copy()
    path = values.pop("path")
    values.pop("config")
    if values.get("repo") is None and path is not None:
        values["repo"] = path
    thresholds = {key: values.pop(key) for key in ("yellow", "red", "context_window")}
    values["thresholds"] = {k: v for k, v in thresholds.items() if v is not None} or None
    return values


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line and merge it with the config file and environment.

    Raises:
        ConfigurationError: if any configuration source is invalid.
    """
    args = build_parser().parse_args(argv)
    config_path = Path(args.config) if args.config else None
    return build_settings(cli_values(args), config_path=config_path)


def parse_pick(answer: str, count: int) -> list[int] | None:
    """Turn an answer such as `1,3-5` into 0-based indexes.

    Args:
        answer (str): the raw answer
        count (int): number of offered entries

    Raises:
        ValueError: if a number or range is malformed or out of bounds.

    Returns:
        list[int] | None: sorted unique indexes, or None when the answer cancels
    """
    answer = answer.strip()
    if not answer or answer.lower() == "q":
        return None
    picked: set[int] = set()
    for part in answer.replace(" ", "").split(","):
        if not part:
            continue
        lo_s, sep, hi_s = part.partition("-")
        lo = int(lo_s)
        hi = int(hi_s) if sep else lo
        if lo < 1 or hi > count or lo > hi:
            msg = f"{part!r} is outside 1-{count}"
            raise ValueError(msg)
        picked.update(range(lo - 1, hi))
    return sorted(picked)


def prompt_picker(
    ask: Callable[[str], str] | None = None,
    out: Callable[[str], Any] | None = None,
) -> Callable[[Sequence[Candidate]], list[Candidate] | None]:
    """Build a picker that lists candidates on stderr and reads a numbered selection."""
    read = ask or input
    write = out or (lambda s: print(s, file=sys.stderr))

    def pick(candidates: Sequence[Candidate]) -> list[Candidate] | None:
        if not candidates:
            return None
        for i, cand in enumerate(candidates, start=1):
            write(f"{i:>4}  {cand.rel}")
        while True:
            try:
                answer = read("Select files (e.g. 1,3-5; empty or q to cancel): ")
            except EOFError:
                return None
            try:
                indexes = parse_pick(answer, len(candidates))
            except ValueError as e:
                write(f"invalid selection: {e}")
                continue
            if indexes is None:
                return None
            return [candidates[i] for i in indexes]

    return pick


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except ConfigurationError as e:
        logger = setup_logging()
        logger.error("configuration_error", error=str(e))
        print(f"gimtex: {e}", file=sys.stderr)
        return EXIT_CONFIG

    logger = setup_logging(
        settings.log_file or None,
        level="DEBUG" if settings.verbose else "INFO",
        force=bool(settings.log_file or settings.verbose),
    )

    picker = prompt_picker() if settings.interactive else None
    try:
        result = run(settings, picker=picker)
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        print(f"gimtex: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except SelectionCancelledError as e:
        logger.error("selection_cancelled")
        print(f"gimtex: {e}", file=sys.stderr)
        return EXIT_CANCELLED

    if settings.output is not None:
        settings.output.write_text(result.text, encoding="utf-8")
        destination = str(settings.output)
    else:
        sys.stdout.write(result.text)
        sys.stdout.flush()
        destination = "stdout"

    budget = result.document.budget
    print(
        f"Wrote {destination} format={settings.format} files={len(result.document.records)} "
        f"tokens={budget.total} payload_tokens={result.payload_tokens} tier={budget.tier}",
        file=sys.stderr,
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
