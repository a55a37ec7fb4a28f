from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from gimtex.config import CandidateSource, SelectionMode
from gimtex.exceptions import InvalidConfigError, SelectionCancelledError
from gimtex.ignore import build_resolver
from gimtex.selector import apply_pick, select_candidates, select_tree

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

FILES = {
    "z.py": "z = 1\n",
    "a/b.py": "b = 1\n",
    "a/a.py": "a = 1\n",
    "docs/readme.md": "# docs\n",
    ".gitignore": "*.log\n",
    "debug.log": "noise\n",
}


@pytest.mark.unit
def test_tree_selection_is_sorted_and_stable(make_tree) -> None:
    root = make_tree(FILES)
    resolver = build_resolver(root)

    first = select_tree(root, resolver, max_workers=1)
    second = select_tree(root, resolver, max_workers=8)

    rels = [c.rel for c in first]
    assert rels == [".gitignore", "a/a.py", "a/b.py", "docs/readme.md", "z.py"]
    assert rels == [c.rel for c in second]


@pytest.mark.unit
def test_interactive_pick_keeps_tree_order(make_tree) -> None:
    root = make_tree(FILES)

    selection = select_candidates(
        root,
        build_resolver(root),
        SelectionMode.INTERACTIVE,
        picker=lambda cands: [cands[-1], "a/a.py"],
    )

    assert [c.rel for c in selection.candidates] == ["a/a.py", "z.py"]
    assert {c.source for c in selection.candidates} == {CandidateSource.PICK}


@pytest.mark.unit
@pytest.mark.parametrize("picked", [None, [], ["never-offered.py"]])
def test_empty_pick_cancels(make_tree, picked) -> None:
    root = make_tree(FILES)

    with pytest.raises(SelectionCancelledError):
        select_candidates(root, build_resolver(root), SelectionMode.INTERACTIVE, picker=lambda _: picked)


@pytest.mark.unit
def test_interactive_mode_requires_a_picker(make_tree) -> None:
    root = make_tree(FILES)

    with pytest.raises(InvalidConfigError):
        select_candidates(root, build_resolver(root), SelectionMode.INTERACTIVE)


@pytest.mark.unit
def test_apply_pick_warns_about_unknown_paths(make_tree) -> None:
    root = make_tree(FILES)
    offered = select_tree(root, build_resolver(root))

    kept, warnings = apply_pick(offered, ["z.py", "ghost.py"])

    assert [c.rel for c in kept] == ["z.py"]
    assert warnings == ["picked path was not offered: ghost.py"]


@pytest.mark.unit
def test_diff_selection_respects_ignore_rules(make_tree, mocker: MockerFixture) -> None:
    root = make_tree(FILES)
    mocker.patch(
        "gimtex.selector.changed_files",
        return_value=["z.py", "debug.log", "a/a.py", "deleted.py"],
    )

    selection = select_candidates(root, build_resolver(root), SelectionMode.DIFF)

    assert [c.rel for c in selection.candidates] == ["a/a.py", "z.py"]
    assert {c.source for c in selection.candidates} == {CandidateSource.DIFF}
