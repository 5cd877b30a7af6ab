from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from coda.shared.commands import (
    find_placeholders,
    load_custom_commands,
    parse_command,
    parse_command_args,
    substitute_args,
)


def test_parse_command() -> None:
    cmd = parse_command("  /run review FILE=a.py ")
    assert cmd is not None
    assert cmd.name == "run"
    assert cmd.args == ["review", "FILE=a.py"]
    assert parse_command("plain prompt") is None


def test_substitute_replaces_longest_names_first() -> None:
    content = "Review $FILE_PATH, then summarise $FILE."
    out = substitute_args(content, {"FILE": "a.py", "FILE_PATH": "src/a.py"})
    assert out == "Review src/a.py, then summarise a.py."


def test_substitute_leaves_missing_placeholders() -> None:
    assert substitute_args("Fix $ISSUE in $FILE", {"FILE": "x"}) == "Fix $ISSUE in x"
    assert substitute_args("Fix $ISSUE", None) == "Fix $ISSUE"


def test_find_placeholders_in_first_seen_order() -> None:
    assert find_placeholders("$B then $A then $B and $lower") == ["B", "A"]


def test_parse_command_args() -> None:
    assert parse_command_args(["FILE=a.py", "MODE=fast=yes"]) == {
        "FILE": "a.py",
        "MODE": "fast=yes",
    }
    with pytest.raises(ValueError, match="KEY=VALUE"):
        parse_command_args(["oops"])


def test_load_custom_commands() -> None:
    with TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "git").mkdir()
        (root / "review.md").write_text("Review $FILE carefully.", encoding="utf-8")
        (root / "git" / "commit.md").write_text("Write a commit message.", encoding="utf-8")
        (root / "notes.txt").write_text("ignored", encoding="utf-8")

        commands = load_custom_commands(root)
        assert sorted(commands) == ["git:commit", "review"]
        assert commands["review"].arg_names == ["FILE"]
        assert commands["git:commit"].source_path == root / "git" / "commit.md"


def test_load_custom_commands_missing_dir() -> None:
    with TemporaryDirectory() as tmpdir:
        assert load_custom_commands(Path(tmpdir) / "nope") == {}
