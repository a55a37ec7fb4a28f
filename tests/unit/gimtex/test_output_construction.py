from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from gimtex.config import Candidate, FileRecord, OutputProtocol, SkipReason
from gimtex.exceptions import RenderError
from gimtex.output_construction import (
    OutputDocument,
    add_line_numbers,
    build_markdown,
    build_xml,
    fence_for,
    render,
    xml_text,
)
from gimtex.summary import StackSummary
from gimtex.tokens import TokenThresholds, build_report


def _rec(rel: str, content: str | None, tokens: int = 0, skip: SkipReason | None = None, detail: str = "") -> FileRecord:
    cand = Candidate(path=Path("/repo") / rel, rel=rel, size=len(content or "") or 200_000)
    return FileRecord(candidate=cand, content=content, tokens=tokens, skip=skip, detail=detail)


def _doc(records: list[FileRecord], protocol: OutputProtocol, *, line_numbers: bool = False) -> OutputDocument:
    return OutputDocument(
        protocol=protocol,
        root_name="repo",
        tree=["repo", "└── app.py"],
        stack=StackSummary(labels=["Python"], details=["Python project: demo"]),
        budget=build_report(records, TokenThresholds()),
        records=records,
        line_numbers=line_numbers,
        warnings=["ignoring .gitignore: bad"],
    )


RECORDS = [
    _rec("app.py", "print('a < b & c')\n", tokens=8),
    _rec("big.txt", None, skip=SkipReason.SIZE, detail="200000 bytes > 100000 byte limit"),
    _rec("notes.md", "# notes\n", tokens=3),
]


@pytest.mark.unit
def test_add_line_numbers_pads_to_four_columns() -> None:
    assert add_line_numbers("a\nb\n") == "   1 | a\n   2 | b"
    assert add_line_numbers("") == ""
    assert add_line_numbers("\n").splitlines() == ["   1 | "]


@pytest.mark.unit
def test_fence_for_outgrows_inner_backticks() -> None:
    assert fence_for("plain") == "```"
    assert fence_for("```py\nx\n```") == "````"


@pytest.mark.unit
def test_build_markdown_sections() -> None:
    out = build_markdown(_doc(RECORDS, OutputProtocol.MARKDOWN))

    assert out.startswith("# Repository Context: repo\nfiles=3 tokens=11 tier=green\n")
    assert "## Project Stack\n- Python\n" in out
    assert "## Structure\n```text\nrepo\n└── app.py\n```" in out
    assert "## Token Budget\n11 tokens (green" in out
    assert "- ignoring .gitignore: bad" in out
    assert "## app.py (8 tokens)\n```python\nprint('a < b & c')\n```" in out
    assert "## big.txt\n> skipped: size (200000 bytes > 100000 byte limit)" in out
    assert "```markdown\n# notes\n```" in out


@pytest.mark.unit
def test_build_markdown_with_line_numbers() -> None:
    out = build_markdown(_doc(RECORDS, OutputProtocol.MARKDOWN, line_numbers=True))

    assert "```python\n   1 | print('a < b & c')\n```" in out


@pytest.mark.unit
def test_build_xml_is_well_formed() -> None:
    out = build_xml(_doc(RECORDS, OutputProtocol.XML))

    root = ET.fromstring(out)
    assert root.tag == "repository"
    assert root.get("name") == "repo"
    assert root.find("metadata/stack/label").text == "Python"
    assert root.find("metadata/token_budget").get("total") == "11"
    files = root.findall("file")
    assert [f.get("path") for f in files] == ["app.py", "big.txt", "notes.md"]
    assert files[0].text == "print('a < b & c')\n"
    assert files[0].get("tokens") == "8"
    assert files[1].get("skipped") == "size"


@pytest.mark.unit
def test_markdown_and_xml_agree_on_files_and_contents() -> None:
    md = render(_doc(RECORDS, OutputProtocol.MARKDOWN))
    xml = render(_doc(RECORDS, OutputProtocol.XML))

    md_paths = re.findall(r"^## (\S+)(?: \(\d+ tokens\))?$", md, flags=re.MULTILINE)
    md_paths = [p for p in md_paths if p not in {"Project", "Structure", "Token", "Warnings"}]
    files = ET.fromstring(xml).findall("file")
    assert md_paths == [f.get("path") for f in files]
    for rec, elem in zip(RECORDS, files, strict=True):
        if rec.content is not None:
            assert elem.text == rec.content
            assert rec.content.rstrip("\n") in md


@pytest.mark.unit
def test_unrepresentable_content_becomes_render_skip() -> None:
    records = [_rec("ctrl.txt", "bell \x07 here\n", tokens=3), _rec("ok.txt", "fine\n", tokens=1)]

    out = build_xml(_doc(records, OutputProtocol.XML))

    root = ET.fromstring(out)
    files = root.findall("file")
    assert files[0].get("skipped") == "render"
    assert "U+0007" in files[0].text
    assert files[1].text == "fine\n"
    warnings = [w.text for w in root.findall("metadata/warnings/warning")]
    assert any("ctrl.txt" in w for w in warnings)


@pytest.mark.unit
def test_xml_text_escapes_markup_and_rejects_control_chars() -> None:
    assert xml_text("<a & b>", path="x") == "&lt;a &amp; b&gt;"
    with pytest.raises(RenderError):
        xml_text("\x00", path="x")


@pytest.mark.unit
def test_render_skip_warning_accounts_for_budget_tokens() -> None:
    records = [_rec("ctrl.txt", "bell \x07 here\n", tokens=3), _rec("ok.txt", "fine\n", tokens=1)]

    root = ET.fromstring(build_xml(_doc(records, OutputProtocol.XML)))

    total = int(root.find("metadata/token_budget").get("total"))
    emitted = sum(int(f.get("tokens", "0")) for f in root.findall("file"))
    warnings = [w.text for w in root.findall("metadata/warnings/warning")]
    assert (total, emitted) == (4, 1)
    assert "cannot render ctrl.txt: character U+0007 is not allowed in XML; its 3 tokens stay in the budget total" in warnings
