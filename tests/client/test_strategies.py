"""Tests for the write / edit / move / copy / delete strategies."""

from __future__ import annotations

import pytest

from flatsync.client.api import APIError
from flatsync.client.operations import (
    DELETE_MARKER,
    CopyStrategy,
    DeleteStrategy,
    Edit,
    EditStrategy,
    FileOperationError,
    FileOperationStrategy,
    MoveStrategy,
    OperationResult,
    ReadLedger,
    StaleAction,
    ValidationError,
    WriteStrategy,
    generate_commit_message,
    validate_file_name,
)
from flatsync.client.remote import ContentTransform
from flatsync.core.hashing import git_blob_sha1
from flatsync.core.types import OperationType
from tests.fakes import InMemoryRemote

PID = "proj"


def make_remote(**files: str) -> InMemoryRemote:
    return InMemoryRemote({PID: dict(files)})


def run(strategy: FileOperationStrategy) -> OperationResult:
    """Compute then apply without local hooks."""
    return strategy.apply_changes(strategy.compute_changes())


class TestValidateFileName:
    """Tests for validate_file_name."""

    @pytest.mark.parametrize("name", ["Code", "utils/strings", "a.b.c"])
    def test_valid(self, name: str) -> None:
        assert validate_file_name("name", name) == name

    @pytest.mark.parametrize("name", ["", "  ", "/abs", "a//b", "../x", "a/./b", "a\\b", None])
    def test_invalid(self, name: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_file_name("name", name)
        assert exc_info.value.field == "name"
        assert str(exc_info.value).startswith("Invalid name: expected")


class TestGenerateCommitMessage:
    """Tests for generate_commit_message."""

    def test_messages(self) -> None:
        assert generate_commit_message(OperationType.WRITE, ["a"]) == "Update a"
        assert generate_commit_message(OperationType.EDIT, ["a"]) == "Update a"
        assert generate_commit_message(OperationType.MOVE, ["a", "b"]) == "Move a to b"
        assert generate_commit_message(OperationType.COPY, ["a", "b"]) == "Copy a to b"
        assert generate_commit_message(OperationType.DELETE, ["a"]) == "Delete a"
        assert generate_commit_message(OperationType.SYNC, ["a"]) == "Sync a from remote"
        assert generate_commit_message(OperationType.DELETE, []) == "Delete files"


class TestWriteStrategy:
    """Tests for WriteStrategy."""

    def test_create(self) -> None:
        remote = make_remote()
        strategy = WriteStrategy(PID, remote, "Code", "x = 1\n")

        changes = strategy.compute_changes()
        assert changes == {"Code": "x = 1\n"}
        assert strategy.created is True
        assert strategy.describe() == "Create Code"
        assert strategy.get_affected_files() == ["Code"]

        result = strategy.apply_changes(changes)
        assert remote.files(PID) == {"Code": "x = 1\n"}
        assert result.operation is OperationType.WRITE
        assert result.files == {"Code": git_blob_sha1("x = 1\n")}
        assert result.collision.has_collisions is False

    def test_update_describe(self) -> None:
        strategy = WriteStrategy(PID, make_remote(Code="old"), "Code", "new")
        strategy.compute_changes()
        assert strategy.created is False
        assert strategy.describe() == "Update Code"

    def test_rejects_empty_content(self) -> None:
        """Empty content is the deletion marker and cannot be written."""
        remote = make_remote()
        with pytest.raises(ValidationError) as exc_info:
            WriteStrategy(PID, remote, "Code", "").compute_changes()
        assert exc_info.value.field == "content"
        assert remote.calls == []

    def test_rejects_bad_name_before_any_call(self) -> None:
        remote = make_remote()
        with pytest.raises(ValidationError):
            WriteStrategy(PID, remote, "../x", "a").compute_changes()
        assert remote.calls == []

    def test_apply_requires_compute(self) -> None:
        strategy = WriteStrategy(PID, make_remote(), "Code", "x")
        with pytest.raises(RuntimeError, match="compute_changes"):
            strategy.apply_changes({"Code": "x"})

    def test_apply_requires_every_file(self) -> None:
        strategy = WriteStrategy(PID, make_remote(), "Code", "x")
        strategy.compute_changes()
        with pytest.raises(FileOperationError) as exc_info:
            strategy.apply_changes({})
        assert exc_info.value.path == "Code"

    def test_apply_uses_validated_content(self) -> None:
        """Content changed by local hooks is what reaches the remote."""
        remote = make_remote()
        strategy = WriteStrategy(PID, remote, "Code", "x=1")
        strategy.compute_changes()
        strategy.apply_changes({"Code": "x = 1\n"})
        assert remote.files(PID)["Code"] == "x = 1\n"

    def test_transform_wraps_on_write(self) -> None:
        transform = ContentTransform(wrap=lambda s: "<" + s + ">", unwrap=lambda s: s[1:-1])
        remote = make_remote(Code="<old>")
        strategy = WriteStrategy(PID, remote, "Code", "new", transform=transform)

        result = run(strategy)

        assert remote.files(PID)["Code"] == "<new>"
        assert result.files["Code"] == git_blob_sha1("<new>")

    def test_rollback_of_create_deletes(self) -> None:
        remote = make_remote()
        strategy = WriteStrategy(PID, remote, "Code", "x")
        run(strategy)
        strategy.rollback()
        assert remote.files(PID) == {}

    def test_rollback_of_update_restores(self) -> None:
        remote = make_remote(Code="old")
        strategy = WriteStrategy(PID, remote, "Code", "new")
        run(strategy)
        strategy.rollback()
        assert remote.files(PID) == {"Code": "old"}

    def test_rollback_without_apply_is_noop(self) -> None:
        remote = make_remote(Code="old")
        strategy = WriteStrategy(PID, remote, "Code", "new")
        strategy.compute_changes()
        calls = len(remote.calls)
        strategy.rollback()
        assert len(remote.calls) == calls


class TestCollisionReporting:
    """Collision detection through strategies."""

    def test_explicit_expected_hash(self) -> None:
        """A stale expected hash is reported but the write still lands."""
        remote = make_remote(Code="theirs")
        strategy = WriteStrategy(
            PID, remote, "Code", "mine", expected_hash=git_blob_sha1("base")
        )

        result = run(strategy)

        assert remote.files(PID)["Code"] == "mine"
        assert result.collision.has_collisions is True
        stale = result.collision.stale_files[0]
        assert stale.action is StaleAction.MODIFIED
        assert stale.actual_hash == git_blob_sha1("theirs")

    def test_matching_expected_hash(self) -> None:
        remote = make_remote(Code="base")
        result = run(WriteStrategy(PID, remote, "Code", "mine", expected_hash=git_blob_sha1("base")))
        assert result.collision.has_collisions is False

    def test_recompute_drops_previous_expectation(self) -> None:
        """A reused strategy only checks the expectation it currently holds."""
        remote = make_remote(Code="theirs")
        strategy = WriteStrategy(
            PID, remote, "Code", "mine", expected_hash=git_blob_sha1("base")
        )
        strategy.compute_changes()

        strategy.expected_hash = None
        result = strategy.apply_changes(strategy.compute_changes())

        assert result.collision.has_collisions is False
        assert remote.files(PID)["Code"] == "mine"

    def test_ledger_tracks_last_read(self) -> None:
        """Changes made after our last read are reported with a diff."""
        remote = make_remote(Code="line\n")
        ledger = ReadLedger()
        ledger.record(PID, "Code", "line\n")
        remote.files(PID)["Code"] = "LINE\n"

        result = run(WriteStrategy(PID, remote, "Code", "mine\n", ledger=ledger))

        assert result.collision.has_collisions is True
        assert result.collision.diff is not None
        assert "-line" in result.collision.diff.content
        assert "+LINE" in result.collision.diff.content

    def test_ledger_updated_after_write(self) -> None:
        """Our own writes are not reported as collisions next time."""
        remote = make_remote(Code="a")
        ledger = ReadLedger()
        ledger.record(PID, "Code", "a")

        run(WriteStrategy(PID, remote, "Code", "b", ledger=ledger))
        second = run(WriteStrategy(PID, remote, "Code", "c", ledger=ledger))

        assert second.collision.has_collisions is False
        assert ledger.get(PID, "Code").hash == git_blob_sha1("c")  # type: ignore[union-attr]

    def test_created_externally(self) -> None:
        remote = make_remote()
        ledger = ReadLedger()
        ledger.record(PID, "Code", None)
        remote.files(PID)["Code"] = "someone else\n"

        result = run(WriteStrategy(PID, remote, "Code", "mine", ledger=ledger))

        assert result.collision.stale_files[0].action is StaleAction.CREATED_EXTERNALLY

    def test_unread_file_not_checked(self) -> None:
        remote = make_remote(Code="anything")
        result = run(WriteStrategy(PID, remote, "Code", "mine", ledger=ReadLedger()))
        assert result.collision.has_collisions is False


class TestEditStrategy:
    """Tests for EditStrategy."""

    def test_single_edit(self) -> None:
        remote = make_remote(Code="var a = 1;\nvar b = 2;\n")
        strategy = EditStrategy(PID, remote, "Code", [Edit("a = 1", "a = 10")])

        result = run(strategy)

        assert remote.files(PID)["Code"] == "var a = 10;\nvar b = 2;\n"
        assert result.details["edits_applied"] == 1
        assert strategy.describe() == "Edit Code: 1 edit"

    def test_edits_apply_in_sequence(self) -> None:
        remote = make_remote(Code="abc")
        edits = [Edit("a", "x"), Edit("xb", "y")]
        strategy = EditStrategy(PID, remote, "Code", edits)
        assert strategy.compute_changes() == {"Code": "yc"}
        assert strategy.describe() == "Edit Code: 2 edits"

    def test_ambiguous_match_needs_index(self) -> None:
        remote = make_remote(Code="foo foo foo")
        with pytest.raises(FileOperationError) as exc_info:
            EditStrategy(PID, remote, "Code", [Edit("foo", "bar")]).compute_changes()
        assert "Found 3 occurrences of text" in str(exc_info.value)
        assert "Specify 'index'" in str(exc_info.value)

    def test_index_selects_occurrence(self) -> None:
        remote = make_remote(Code="foo foo foo")
        strategy = EditStrategy(PID, remote, "Code", [Edit("foo", "bar", index=1)])
        assert strategy.compute_changes() == {"Code": "foo bar foo"}

    def test_index_out_of_range(self) -> None:
        remote = make_remote(Code="foo foo")
        with pytest.raises(FileOperationError, match=r"Index 5 out of range \(found 2"):
            EditStrategy(PID, remote, "Code", [Edit("foo", "bar", index=5)]).compute_changes()

    def test_text_not_found(self) -> None:
        remote = make_remote(Code="abc")
        with pytest.raises(FileOperationError) as exc_info:
            EditStrategy(PID, remote, "Code", [Edit("zzz", "y")]).compute_changes()
        assert 'Text not found: "zzz"' in str(exc_info.value)
        assert exc_info.value.operation == "edit (1)"

    def test_failure_names_edit_position(self) -> None:
        remote = make_remote(Code="abc")
        with pytest.raises(FileOperationError) as exc_info:
            EditStrategy(PID, remote, "Code", [Edit("a", "x"), Edit("a", "y")]).compute_changes()
        assert exc_info.value.operation == "edit (2)"

    def test_overlapping_occurrences_counted_once(self) -> None:
        remote = make_remote(Code="aaaa")
        with pytest.raises(FileOperationError, match="Found 2 occurrences"):
            EditStrategy(PID, remote, "Code", [Edit("aa", "b")]).compute_changes()

    def test_fuzzy_whitespace(self) -> None:
        remote = make_remote(Code="if (x)  {\n\treturn;\n}")
        edits = [Edit("if (x) { return; }", "noop();")]

        with pytest.raises(FileOperationError):
            EditStrategy(PID, remote, "Code", edits).compute_changes()

        strategy = EditStrategy(PID, remote, "Code", edits, fuzzy_whitespace=True)
        assert strategy.compute_changes() == {"Code": "noop();"}

    def test_fuzzy_escapes_regex(self) -> None:
        remote = make_remote(Code="a.b(c)")
        strategy = EditStrategy(PID, remote, "Code", [Edit("b(c)", "d")], fuzzy_whitespace=True)
        assert strategy.compute_changes() == {"Code": "a.d"}

    def test_cannot_empty_file(self) -> None:
        remote = make_remote(Code="only")
        with pytest.raises(FileOperationError, match="empty"):
            EditStrategy(PID, remote, "Code", [Edit("only", "")]).compute_changes()

    def test_missing_file(self) -> None:
        with pytest.raises(FileOperationError, match="file not found"):
            EditStrategy(PID, make_remote(), "Code", [Edit("a", "b")]).compute_changes()

    @pytest.mark.parametrize(
        ("edits", "field"),
        [
            ([], "edits"),
            ([Edit("a", "b")] * 21, "edits"),
            ([Edit("", "b")], "old_text"),
            ([Edit("a", "b", index=-1)], "index"),
        ],
    )
    def test_validation(self, edits: list[Edit], field: str) -> None:
        remote = make_remote(Code="a")
        with pytest.raises(ValidationError) as exc_info:
            EditStrategy(PID, remote, "Code", edits).compute_changes()
        assert exc_info.value.field == field
        assert remote.calls == []

    def test_twenty_edits_allowed(self) -> None:
        remote = make_remote(Code="x" * 20)
        strategy = EditStrategy(PID, remote, "Code", [Edit("x", "y", index=0)] * 20)
        assert strategy.compute_changes() == {"Code": "y" * 20}

    def test_rollback_restores(self) -> None:
        remote = make_remote(Code="abc")
        strategy = EditStrategy(PID, remote, "Code", [Edit("b", "B")])
        run(strategy)
        strategy.rollback()
        assert remote.files(PID)["Code"] == "abc"


class TestMoveStrategy:
    """Tests for MoveStrategy."""

    def test_move(self) -> None:
        remote = make_remote(old="content")
        strategy = MoveStrategy(PID, remote, "old", "new")

        changes = strategy.compute_changes()
        assert changes == {"old": DELETE_MARKER, "new": "content"}
        assert sorted(strategy.get_affected_files()) == ["new", "old"]

        result = strategy.apply_changes(changes)
        assert remote.files(PID) == {"new": "content"}
        assert result.files == {"new": git_blob_sha1("content"), "old": None}
        assert strategy.describe() == "Move old to new"

    def test_destination_written_before_source_deleted(self) -> None:
        remote = make_remote(old="content")
        run(MoveStrategy(PID, remote, "old", "new"))
        writes = [c for c in remote.calls if c[0] in ("create_or_update_file", "delete_file")]
        assert writes == [("create_or_update_file", "new"), ("delete_file", "old")]

    def test_destination_exists(self) -> None:
        remote = make_remote(old="a", new="b")
        with pytest.raises(FileOperationError, match="already exists"):
            MoveStrategy(PID, remote, "old", "new").compute_changes()

    def test_overwrite(self) -> None:
        remote = make_remote(old="a", new="b")
        run(MoveStrategy(PID, remote, "old", "new", overwrite=True))
        assert remote.files(PID) == {"new": "a"}

    def test_source_missing(self) -> None:
        with pytest.raises(FileOperationError, match="source file not found"):
            MoveStrategy(PID, make_remote(), "old", "new").compute_changes()

    def test_same_name(self) -> None:
        with pytest.raises(ValidationError):
            MoveStrategy(PID, make_remote(a="x"), "a", "a").compute_changes()

    def test_rollback_restores_both(self) -> None:
        remote = make_remote(old="a", new="b")
        strategy = MoveStrategy(PID, remote, "old", "new", overwrite=True)
        run(strategy)
        strategy.rollback()
        assert remote.files(PID) == {"old": "a", "new": "b"}

    def test_partial_failure_rolls_back(self) -> None:
        """If deleting the source fails, rollback removes the new copy."""
        remote = make_remote(old="a")
        remote.fail[("delete_file", "old")] = APIError("boom", 500)
        strategy = MoveStrategy(PID, remote, "old", "new")

        with pytest.raises(APIError):
            run(strategy)
        assert remote.files(PID) == {"old": "a", "new": "a"}

        del remote.fail[("delete_file", "old")]
        strategy.rollback()
        assert remote.files(PID) == {"old": "a"}

    def test_rollback_continues_after_errors(self) -> None:
        remote = make_remote(old="a")
        strategy = MoveStrategy(PID, remote, "old", "new")
        run(strategy)
        remote.fail[("create_or_update_file", "old")] = APIError("down", 503)

        strategy.rollback()

        assert "new" not in remote.files(PID)


class TestCopyStrategy:
    """Tests for CopyStrategy."""

    def test_copy(self) -> None:
        remote = make_remote(a="content")
        strategy = CopyStrategy(PID, remote, "a", "b")

        changes = strategy.compute_changes()
        assert changes == {"b": "content"}
        assert strategy.get_affected_files() == ["b"]

        strategy.apply_changes(changes)
        assert remote.files(PID) == {"a": "content", "b": "content"}
        assert strategy.describe() == "Copy a to b"

    def test_destination_exists(self) -> None:
        with pytest.raises(FileOperationError, match="already exists"):
            CopyStrategy(PID, make_remote(a="1", b="2"), "a", "b").compute_changes()

    def test_source_missing(self) -> None:
        with pytest.raises(FileOperationError, match="source file not found"):
            CopyStrategy(PID, make_remote(), "a", "b").compute_changes()

    def test_rollback_deletes_copy(self) -> None:
        remote = make_remote(a="content")
        strategy = CopyStrategy(PID, remote, "a", "b")
        run(strategy)
        strategy.rollback()
        assert remote.files(PID) == {"a": "content"}

    def test_copy_unwraps_then_rewraps(self) -> None:
        transform = ContentTransform(wrap=lambda s: "#" + s, unwrap=lambda s: s[1:])
        remote = make_remote(a="#body")
        strategy = CopyStrategy(PID, remote, "a", "b", transform=transform)
        assert strategy.compute_changes() == {"b": "body"}
        run(strategy)
        assert remote.files(PID)["b"] == "#body"


class TestDeleteStrategy:
    """Tests for DeleteStrategy."""

    def test_delete(self) -> None:
        remote = make_remote(a="x", b="y")
        strategy = DeleteStrategy(PID, remote, "a")

        assert strategy.compute_changes() == {"a": DELETE_MARKER}
        result = run(strategy)

        assert remote.files(PID) == {"b": "y"}
        assert result.files == {"a": None}
        assert strategy.describe() == "Delete a"

    def test_missing(self) -> None:
        with pytest.raises(FileOperationError, match="file not found"):
            DeleteStrategy(PID, make_remote(), "a").compute_changes()

    def test_rollback_recreates(self) -> None:
        remote = make_remote(a="x")
        strategy = DeleteStrategy(PID, remote, "a")
        run(strategy)
        strategy.rollback()
        assert remote.files(PID) == {"a": "x"}
