from __future__ import annotations

import io
import re
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel, ConfigDict, Field

from gimtex.config import FileRecord, OutputProtocol, SkipReason
from gimtex.exceptions import RenderError
from gimtex.logging import logger
from gimtex.summary import StackSummary
from gimtex.tokens import TokenBudgetReport

_BACKTICK_RUN = re.compile(r"`{3,}")
_INVALID_XML_CHARS = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


class OutputDocument(BaseModel):
    """Everything needed to render the payload, in output order."""

    model_config = ConfigDict(frozen=True)

    protocol: OutputProtocol
    root_name: str
    tree: list[str] = Field(default_factory=list)
    stack: StackSummary = Field(default_factory=StackSummary)
    budget: TokenBudgetReport
    records: list[FileRecord] = Field(default_factory=list)
    line_numbers: bool = False
    warnings: list[str] = Field(default_factory=list)


def add_line_numbers(text: str) -> str:
    """Prefix every line with its 1-based number, right-aligned on 4 columns.

    Args:
        text (str): content to number

    Returns:
        str: numbered content; the empty string stays empty
    """
    if not text:
        return text
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return "\n".join(f"{i:>4} | {line}" for i, line in enumerate(lines, start=1))


def file_body(rec: FileRecord, *, line_numbers: bool) -> str:
    """Return the text emitted for a non-skipped record."""
    content = rec.content or ""
    return add_line_numbers(content) if line_numbers else content


def fence_for(body: str) -> str:
    """Pick a backtick fence longer than any backtick run inside `body`."""
    longest = max((len(m.group(0)) for m in _BACKTICK_RUN.finditer(body)), default=2)
    return "`" * max(3, longest + 1)


def build_markdown(doc: OutputDocument) -> str:
    """Build a markdown string representing the repository contents.

    The markdown includes a header with repository information, the detected
    stack, a visual tree of the file structure, the token budget, and one
    section per file with its content in a fenced code block. Skipped files
    keep their heading and show a quoted placeholder line instead of content.

    Args:
        doc (OutputDocument): the assembled document

    Returns:
        str: the generated markdown string representing the repository contents
    """
    out = io.StringIO()
    budget = doc.budget
    out.write(f"# Repository Context: {doc.root_name}\n")
    out.write(f"files={len(doc.records)} tokens={budget.total} tier={budget.tier}\n\n")

    if doc.stack.labels or doc.stack.details:
        out.write("## Project Stack\n")
        out.writelines(f"- {label}\n" for label in doc.stack.labels)
        if doc.stack.details:
            out.write("\n")
            out.write("\n".join(doc.stack.details))
            out.write("\n")
        out.write("\n")

    out.write("## Structure\n")
    out.write("```text\n")
    out.write("\n".join(doc.tree))
    out.write("\n```\n\n")

    out.write("## Token Budget\n")
    out.write(f"{budget.summary_line()}\n")
    out.write(f"thresholds: yellow>={budget.thresholds.yellow} red>={budget.thresholds.red}\n\n")

    if doc.warnings:
        out.write("## Warnings\n")
        out.writelines(f"- {w}\n" for w in doc.warnings)
        out.write("\n")

    for rec in doc.records:
        if rec.skip is not None:
            out.write(f"## {rec.rel}\n")
            out.write(f"> {rec.skip_marker()}\n\n")
            continue
        body = file_body(rec, line_numbers=doc.line_numbers).removesuffix("\n")
        fence = fence_for(body)
        out.write(f"## {rec.rel} ({rec.tokens} tokens)\n")
        out.write(f"{fence}{rec.candidate.language or 'text'}\n{body}\n{fence}\n\n")

    return out.getvalue().rstrip() + "\n"


def xml_text(value: str, *, path: str) -> str:
    """Escape `value` for use as XML element text.

    Raises:
        RenderError: if `value` contains characters XML 1.0 cannot carry.
    """
    bad = _INVALID_XML_CHARS.search(value)
    if bad is not None:
        reason = f"character U+{ord(bad.group(0)):04X} is not allowed in XML"
        raise RenderError(path=path, reason=reason)
    return escape(value, {"\r": "&#13;"})


def _clean(value: str) -> str:
    return _INVALID_XML_CHARS.sub("?", value)


def _xml_skipped(rel: str, marker: str, reason: SkipReason | str) -> str:
    return f"<file path={quoteattr(_clean(rel))} skipped={quoteattr(str(reason))}>{escape(_clean(marker))}</file>\n"


def build_xml(doc: OutputDocument) -> str:
    """Build the structured-markup rendering of the document.

    A `<repository>` root wraps a `<metadata>` element (stack, tree, token
    budget, warnings) and one `<file path=...>` element per record whose text
    is the (possibly numbered) content. Files whose content cannot be carried by
    XML are replaced by a `skipped="render"` placeholder and a warning naming
    the tokens the budget still counts for them.

    Args:
        doc (OutputDocument): the assembled document

    Returns:
        str: the XML payload
    """
    warnings = list(doc.warnings)
    files = io.StringIO()
    for rec in doc.records:
        if rec.skip is not None:
            files.write(_xml_skipped(rec.rel, rec.skip_marker(), rec.skip))
            continue
        try:
            text = xml_text(file_body(rec, line_numbers=doc.line_numbers), path=rec.rel)
        except RenderError as e:
            logger.warning("render_skipped", path=rec.rel, reason=e.reason)
            warnings.append(f"{e}; its {rec.tokens} tokens stay in the budget total")
            files.write(_xml_skipped(rec.rel, f"skipped: {SkipReason.RENDER} ({e.reason})", SkipReason.RENDER))
            continue
        files.write(f"<file path={quoteattr(_clean(rec.rel))} tokens=\"{rec.tokens}\">{text}</file>\n")

    budget = doc.budget
    out = io.StringIO()
    out.write(f"<repository name={quoteattr(_clean(doc.root_name))}>\n")
    out.write("<metadata>\n")
    out.write("<stack>\n")
    out.writelines(f"<label>{escape(_clean(label))}</label>\n" for label in doc.stack.labels)
    out.writelines(f"<detail>{escape(_clean(d))}</detail>\n" for d in doc.stack.details)
    out.write("</stack>\n")
    out.write(f"<tree>{escape(_clean(chr(10).join(doc.tree)))}</tree>\n")
    out.write(
        f'<token_budget total="{budget.total}" tier="{budget.tier}" '
        f'yellow="{budget.thresholds.yellow}" red="{budget.thresholds.red}" '
        f'context_window="{budget.thresholds.context_window}"/>\n',
    )
    if warnings:
        out.write("<warnings>\n")
        out.writelines(f"<warning>{escape(_clean(w))}</warning>\n" for w in warnings)
        out.write("</warnings>\n")
    out.write("</metadata>\n")
    out.write(files.getvalue())
    out.write("</repository>\n")
    return out.getvalue()


def render(doc: OutputDocument) -> str:
    """Serialize `doc` with the protocol it is tagged with."""
    if doc.protocol is OutputProtocol.XML:
        return build_xml(doc)
    return build_markdown(doc)
