from __future__ import annotations

from pathlib import Path

import pytest

from gimtex import __version__, cli
from gimtex.config import Candidate, OutputProtocol, SelectionMode

pytestmark = pytest.mark.usefixtures("clean_env")


@pytest.mark.unit
def test_parse_args_builds_settings(tmp_path: Path) -> None:
    settings = cli.parse_args(
        [
            str(tmp_path),
            "--format",
            "xml",
            "--filter",
            "*.py",
            "--filter",
            "*.toml",
            "--ignore",
            "docs/",
            "--diff",
            "-n",
            "--max-bytes",
            "1234",
            "--red",
            "90000",
        ],
    )

    assert settings.repo == tmp_path
    assert settings.format is OutputProtocol.XML
    assert settings.filters == ["*.py", "*.toml"]
    assert settings.ignore == ["docs/"]
    assert settings.mode is SelectionMode.DIFF
    assert settings.line_numbers is True
    assert settings.max_bytes == 1234
    assert settings.thresholds.red == 90000
    assert settings.thresholds.yellow == 30_000


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
def test_diff_and_interactive_cannot_be_combined() -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--diff", "--interactive"])

    assert exc_info.value.code == 2


@pytest.mark.unit
def test_cli_values_leaves_unset_options_empty() -> None:
    args = cli.build_parser().parse_args(["--yellow", "5"])

    values = cli.cli_values(args)

    assert values["thresholds"] == {"yellow": 5}
    assert values["repo"] is None
    assert values["diff"] is None
    assert "config" not in values


@pytest.mark.unit
@pytest.mark.parametrize(
    ("answer", "expected"),
    [
        ("1", [0]),
        ("1,3-5", [0, 2, 3, 4]),
        (" 2 , 2 ", [1]),
        ("", None),
        ("q", None),
    ],
)
def test_parse_pick(answer: str, expected: list[int] | None) -> None:
    assert cli.parse_pick(answer, 5) == expected


@pytest.mark.unit
@pytest.mark.parametrize("answer", ["0", "6", "4-2", "x", "1-"])
def test_parse_pick_rejects_bad_answers(answer: str) -> None:
    with pytest.raises(ValueError):
        cli.parse_pick(answer, 5)


@pytest.mark.unit
def test_prompt_picker_retries_after_bad_answer() -> None:
    cands = [Candidate(path=Path("/r") / n, rel=n, size=1) for n in ("a.py", "b.py", "c.py")]
    answers = iter(["9", "2-3"])
    shown: list[str] = []

    picker = cli.prompt_picker(ask=lambda _prompt: next(answers), out=shown.append)

    assert [c.rel for c in picker(cands)] == ["b.py", "c.py"]
    assert shown[:3] == ["   1  a.py", "   2  b.py", "   3  c.py"]
    assert shown[-1].startswith("invalid selection")


@pytest.mark.unit
def test_prompt_picker_cancels_on_eof() -> None:
    def ask(_prompt: str) -> str:
        raise EOFError

    picker = cli.prompt_picker(ask=ask, out=lambda _s: None)

    assert picker([Candidate(path=Path("/r/a.py"), rel="a.py", size=1)]) is None
