"""
Tests for the SQLAlchemy note storage service.

Covers user creation, folder CRUD with cascade, the lazily created
"Unfiled" folder, partial note updates and owner scoping.
"""
from __future__ import annotations

import threading
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from second_brain.database import Note as NoteORM
from second_brain.services.storage import FolderNotFoundError, NoteStorage


@pytest.fixture()
def storage(tmp_path: Path) -> NoteStorage:
    return NoteStorage(db_path=tmp_path / "storage_test.db")


@pytest.fixture()
def alice(storage: NoteStorage) -> int:
    return storage.create_user("Alice", "alice@example.com", "hash-a").id


@pytest.fixture()
def bob(storage: NoteStorage) -> int:
    return storage.create_user("Bob", "bob@example.com", "hash-b").id


def test_create_user_rejects_duplicate_email(storage: NoteStorage) -> None:
    assert storage.create_user("A", "dup@example.com", "h") is not None
    assert storage.create_user("B", "dup@example.com", "h") is None


def test_get_user_credentials(storage: NoteStorage, alice: int) -> None:
    profile, password_hash = storage.get_user_credentials("alice@example.com")
    assert profile.id == alice
    assert password_hash == "hash-a"
    assert storage.get_user_credentials("missing@example.com") is None


def test_default_folder_is_reused(storage: NoteStorage, alice: int) -> None:
    first = storage.create_note(alice, title="one")
    second = storage.create_note(alice, title="two")
    assert first.folder_id == second.folder_id

    default = storage.get_or_create_default_folder(alice)
    assert default.id == first.folder_id
    assert default.name == "Unfiled"
    assert default.note_count == 2
    assert [f.name for f in storage.list_folders(alice)] == ["Unfiled"]


def test_create_note_in_foreign_folder_raises(storage: NoteStorage, alice: int, bob: int) -> None:
    bobs = storage.create_folder(bob, "Bob's")
    with pytest.raises(FolderNotFoundError):
        storage.create_note(alice, folder_id=bobs.id)
    assert storage.list_notes(alice) == []


def test_update_note_applies_only_given_fields(storage: NoteStorage, alice: int) -> None:
    note = storage.create_note(alice, title="T", content="<p>C</p>")

    updated = storage.update_note(alice, note.id, {"content": "<p>New</p>"})
    assert updated.title == "T"
    assert updated.content == "<p>New</p>"
    assert updated.updated_at >= note.updated_at


def test_update_note_rejects_foreign_folder(storage: NoteStorage, alice: int, bob: int) -> None:
    note = storage.create_note(alice, title="mine")
    bobs = storage.create_folder(bob, "Bob's")

    with pytest.raises(FolderNotFoundError):
        storage.update_note(alice, note.id, {"folder_id": bobs.id, "title": "moved"})

    unchanged = storage.get_note(alice, note.id)
    assert unchanged.folder_id == note.folder_id
    assert unchanged.title == "mine"


def test_scoped_reads_and_writes(storage: NoteStorage, alice: int, bob: int) -> None:
    folder = storage.create_folder(bob, "Private")
    note = storage.create_note(bob, title="secret", folder_id=folder.id)

    assert storage.get_note(alice, note.id) is None
    assert storage.update_note(alice, note.id, {"title": "x"}) is None
    assert storage.delete_note(alice, note.id) is False
    assert storage.get_folder(alice, folder.id) is None
    assert storage.rename_folder(alice, folder.id, "x") is None
    assert storage.delete_folder(alice, folder.id) is False

    assert storage.get_note(bob, note.id).title == "secret"
    assert storage.get_folder(bob, folder.id).name == "Private"


def test_delete_folder_removes_notes_rows(storage: NoteStorage, alice: int) -> None:
    folder = storage.create_folder(alice, "Temp")
    storage.create_note(alice, title="a", folder_id=folder.id)
    storage.create_note(alice, title="b", folder_id=folder.id)
    survivor = storage.create_note(alice, title="c")

    assert storage.delete_folder(alice, folder.id) is True

    with storage._session_scope() as session:  # noqa: SLF001 - test helper
        remaining = session.query(NoteORM.id).all()
    assert [row[0] for row in remaining] == [survivor.id]


def test_list_notes_search_is_case_insensitive(storage: NoteStorage, alice: int) -> None:
    storage.create_note(alice, title="Meeting Notes", content="<p>budget</p>")
    storage.create_note(alice, title="Recipes", content="<p>Pasta with BASIL</p>")

    assert [n.title for n in storage.list_notes(alice, search="meeting")] == ["Meeting Notes"]
    assert [n.title for n in storage.list_notes(alice, search="basil")] == ["Recipes"]
    assert storage.list_notes(alice, search="nothing-matches") == []


def test_rename_folder_keeps_notes(storage: NoteStorage, alice: int) -> None:
    folder = storage.create_folder(alice, "Old")
    storage.create_note(alice, folder_id=folder.id)

    renamed = storage.rename_folder(alice, folder.id, "New")
    assert renamed.name == "New"
    assert renamed.note_count == 1


def test_concurrent_folderless_creates_share_one_unfiled_folder(tmp_path: Path) -> None:
    db_path = tmp_path / "race.db"
    author = NoteStorage(db_path=db_path).create_user("Race", "race@example.com", "h").id
    storages = [NoteStorage(db_path=db_path) for _ in range(4)]
    barrier = threading.Barrier(len(storages))
    folder_ids: list[int] = []
    errors: list[Exception] = []

    def create(storage: NoteStorage) -> None:
        barrier.wait()
        try:
            folder_ids.append(storage.create_note(author, title="n").folder_id)
        except OperationalError as e:  # a busy SQLite writer may give up; it must not duplicate
            errors.append(e)

    threads = [threading.Thread(target=create, args=(s,)) for s in storages]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    unfiled = [f for f in storages[0].list_folders(author) if f.name == "Unfiled"]
    assert len(unfiled) == 1
    assert folder_ids
    assert set(folder_ids) == {unfiled[0].id}
