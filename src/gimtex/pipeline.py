"""Context extraction pipeline.

Ignore rules → candidate selection → per-file load, redaction and token count
in a thread pool → ordered reassembly → tree and stack summary → rendering.
Configuration problems abort before any file is read; per-file problems only
turn that file into a skip record.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from gimtex.config import Candidate, FileRecord, SelectionMode, SkipReason
from gimtex.exceptions import InvalidConfigError, ResolutionWarning
from gimtex.file_manipulation import load_text
from gimtex.git import ensure_git_repository
from gimtex.ignore import build_resolver
from gimtex.logging import logger
from gimtex.output_construction import OutputDocument, add_line_numbers, render
from gimtex.redact import redact
from gimtex.selector import select_candidates
from gimtex.summary import build_tree_lines, detect_stack, tree_entries
from gimtex.tokens import TokenCounter, build_report

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gimtex.selector import Picker
    from gimtex.settings import Settings


class PipelineResult(BaseModel):
    """Rendered payload plus the document it was rendered from."""

    model_config = ConfigDict(frozen=True)

    text: str
    document: OutputDocument
    payload_tokens: int


def process_candidate(
    candidate: Candidate,
    *,
    counter: TokenCounter,
    max_bytes: int | None,
    line_numbers: bool = False,
) -> FileRecord:
    """Load, redact and count one candidate.

    Args:
        candidate (Candidate): the file to process
        counter (TokenCounter): run-wide token counter
        max_bytes (int | None): size ceiling
        line_numbers (bool): count tokens on the numbered form, as it will be emitted

    Returns:
        FileRecord: the processed record, or a skip record
    """
    if candidate.is_binary:
        return FileRecord(candidate=candidate, skip=SkipReason.BINARY, detail=f"{candidate.size} bytes")
    if candidate.is_too_big(max_bytes):
        detail = f"{candidate.size} bytes > {max_bytes} byte limit"
        return FileRecord(candidate=candidate, skip=SkipReason.SIZE, detail=detail)
    try:
        text = load_text(candidate.path, candidate.rel)
    except ResolutionWarning as e:
        logger.warning("candidate_skipped", path=candidate.rel, kind=e.kind, reason=e.reason)
        return FileRecord(candidate=candidate, skip=SkipReason(e.kind), detail=e.reason)

    result = redact(text)
    if result.total:
        logger.warning("secrets_redacted", path=candidate.rel, counts=result.counts)
    emitted = add_line_numbers(result.text) if line_numbers else result.text
    return FileRecord(
        candidate=candidate,
        content=result.text,
        tokens=counter.count(emitted),
        redactions=result.counts,
    )


def process_all(
    candidates: Sequence[Candidate],
    *,
    counter: TokenCounter,
    max_bytes: int | None,
    line_numbers: bool = False,
    max_workers: int | None = None,
) -> list[FileRecord]:
    """Process candidates concurrently and return records in candidate order.

    Each task is tagged with its candidate index and results are placed by
    that index, so completion order never leaks into the output.
    """
    records: list[FileRecord | None] = [None] * len(candidates)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(
                process_candidate,
                cand,
                counter=counter,
                max_bytes=max_bytes,
                line_numbers=line_numbers,
            ): idx
            for idx, cand in enumerate(candidates)
        }
        for fut in as_completed(futures):
            idx = futures[fut]
            try:
                records[idx] = fut.result()
            except Exception as e:
                logger.exception("candidate_failed", path=candidates[idx].rel)
                records[idx] = FileRecord(
                    candidate=candidates[idx],
                    skip=SkipReason.UNREADABLE,
                    detail=f"{type(e).__name__}: {e}",
                )
    return [r for r in records if r is not None]


def collect_warnings(records: Sequence[FileRecord]) -> list[str]:
    """Per-file notes that must be visible in the payload: read failures and redactions."""
    out: list[str] = []
    for rec in records:
        if rec.skip in {SkipReason.UNREADABLE, SkipReason.DECODE}:
            out.append(f"{rec.rel}: {rec.skip_marker()}")
        if rec.redactions:
            counts = ", ".join(f"{k}={v}" for k, v in sorted(rec.redactions.items()))
            out.append(f"{rec.rel}: redacted {rec.redaction_count} secret(s) ({counts})")
    return out


def make_counter(encoding: str) -> TokenCounter:
    """Build the run-wide token counter.

    Raises:
        InvalidConfigError: if tiktoken does not know `encoding`.
    """
    try:
        return TokenCounter(encoding)
    except ValueError as e:
        raise InvalidConfigError(source="encoding", message=str(e)) from e


def run(settings: Settings, picker: Picker | None = None) -> PipelineResult:
    """Execute the whole pipeline for one invocation.

    Args:
        settings (Settings): run configuration
        picker (Picker | None): interactive selection capability

    Raises:
        ConfigurationError: malformed globs, bad settings, diff mode outside git.
        SelectionCancelledError: the picker returned nothing.

    Returns:
        PipelineResult: the rendered payload
    """
    root = settings.repo.resolve()
    if not root.is_dir():
        raise InvalidConfigError(source="repo", message=f"{root} is not a directory")
    if settings.mode is SelectionMode.DIFF:
        ensure_git_repository(root)

    resolver = build_resolver(root, filters=settings.filters, extra_ignores=settings.ignore)
    counter = make_counter(settings.encoding)
    selection = select_candidates(
        root,
        resolver,
        settings.mode,
        picker=picker,
        max_workers=settings.workers,
    )

    records = process_all(
        selection.candidates,
        counter=counter,
        max_bytes=settings.max_bytes,
        line_numbers=settings.line_numbers,
        max_workers=settings.workers,
    )
    budget = build_report(records, settings.thresholds)
    document = OutputDocument(
        protocol=settings.format,
        root_name=root.name or str(root),
        tree=build_tree_lines(root.name or str(root), tree_entries(records)),
        stack=detect_stack(root),
        budget=budget,
        records=records,
        line_numbers=settings.line_numbers,
        warnings=[*resolver.warnings, *selection.warnings, *collect_warnings(records)],
    )
    text = render(document)
    logger.info(
        "payload_rendered",
        files=len(records),
        skipped=sum(1 for r in records if r.skip is not None),
        tokens=budget.total,
        tier=str(budget.tier),
    )
    return PipelineResult(text=text, document=document, payload_tokens=counter.count(text))
