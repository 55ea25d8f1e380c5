# tests/test_store.py

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from firebase_admin import exceptions

from taskcal.api import store as store_module
from taskcal.api.store import FirebaseTaskStore, apply_stream_event
from taskcal.core.errors import StoreError

RECORD = {
    "title": "Stretch",
    "category": "health",
    "priority": "low",
    "completed": False,
    "deadline": "2024-06-05T07:00:00Z",
}


@pytest.fixture()
def refs(monkeypatch) -> dict:
    """Patch db.reference so each path gets its own MagicMock."""
    made: dict[str, MagicMock] = {}

    def reference(path, app=None):
        return made.setdefault(path, MagicMock(name=path))

    monkeypatch.setattr(store_module.db, "reference", reference)
    return made


def test_put_at_root_replaces_the_tree() -> None:
    tree = apply_stream_event({"old": RECORD}, "put", "/", {"k1": RECORD})
    assert tree == {"k1": RECORD}
    assert apply_stream_event({"old": RECORD}, "put", "/", None) == {}


def test_put_at_child_paths() -> None:
    tree = {"k1": dict(RECORD)}

    tree = apply_stream_event(tree, "put", "/k2", RECORD)
    tree = apply_stream_event(tree, "put", "/k1/completed", True)
    tree = apply_stream_event(tree, "put", "/k2", None)

    assert set(tree) == {"k1"}
    assert tree["k1"]["completed"] is True


def test_patch_merges_children_without_touching_input() -> None:
    original = {"k1": dict(RECORD)}

    tree = apply_stream_event(original, "patch", "/k1", {"calendarEventId": "evt1", "completed": True})

    assert tree["k1"]["calendarEventId"] == "evt1"
    assert tree["k1"]["completed"] is True
    assert tree["k1"]["title"] == "Stretch"
    assert "calendarEventId" not in original["k1"]


def test_unknown_event_types_are_ignored() -> None:
    tree = {"k1": RECORD}
    assert apply_stream_event(tree, "keep-alive", "/", None) is tree


def test_create_pushes_under_the_user(refs) -> None:
    store = FirebaseTaskStore()
    refs.setdefault("tasks/u1", MagicMock()).push.return_value = SimpleNamespace(key="-Nabc")

    assert store.create_task("u1", RECORD) == "-Nabc"
    refs["tasks/u1"].push.assert_called_once_with(RECORD)


def test_patch_and_delete_address_the_task_path(refs) -> None:
    store = FirebaseTaskStore()

    store.patch_task("u1", "k1", {"completed": True})
    store.delete_task("u1", "k1")
    store.patch_task("u1", "k1", {})

    refs["tasks/u1/k1"].update.assert_called_once_with({"completed": True})
    refs["tasks/u1/k1"].delete.assert_called_once_with()


def test_firebase_errors_become_store_errors(refs) -> None:
    store = FirebaseTaskStore()
    refs.setdefault("tasks/u1/k1", MagicMock()).delete.side_effect = exceptions.UnavailableError("offline")

    with pytest.raises(StoreError) as info:
        store.delete_task("u1", "k1")
    assert isinstance(info.value.__cause__, exceptions.FirebaseError)


def test_user_id_is_required(refs) -> None:
    with pytest.raises(StoreError):
        FirebaseTaskStore().create_task("", RECORD)


def test_get_tasks_reads_the_subtree(refs) -> None:
    refs.setdefault("tasks/u1", MagicMock()).get.return_value = {"k1": RECORD}
    assert [t.id for t in FirebaseTaskStore().get_tasks("u1")] == ["k1"]


def test_subscribe_delivers_full_snapshots(refs) -> None:
    registration = MagicMock()
    refs.setdefault("tasks/u1", MagicMock()).listen.return_value = registration
    snapshots = []

    subscription = FirebaseTaskStore().subscribe("u1", lambda tasks: snapshots.append(tasks))
    handler = refs["tasks/u1"].listen.call_args.args[0]

    handler(SimpleNamespace(event_type="put", path="/", data={"k1": RECORD}))
    handler(SimpleNamespace(event_type="put", path="/k2", data=RECORD))
    handler(SimpleNamespace(event_type="patch", path="/k1", data={"completed": True}))

    assert [[t.id for t in s] for s in snapshots] == [["k1"], ["k1", "k2"], ["k1", "k2"]]
    assert snapshots[-1][0].completed is True

    with subscription:
        assert subscription.active
    assert not subscription.active
    subscription.close()
    registration.close.assert_called_once_with()


def test_listener_failures_go_to_on_error(refs) -> None:
    refs.setdefault("tasks/u1", MagicMock())
    errors = []

    def boom(tasks):
        raise RuntimeError("ui exploded")

    FirebaseTaskStore().subscribe("u1", boom, errors.append)
    handler = refs["tasks/u1"].listen.call_args.args[0]
    handler(SimpleNamespace(event_type="put", path="/", data={"k1": RECORD}))

    assert [str(e) for e in errors] == ["ui exploded"]


def test_save_user_profile_writes_users_node(refs) -> None:
    FirebaseTaskStore().save_user_profile("u1", {"email": "me@example.com"})
    refs["users/u1"].set.assert_called_once_with({"email": "me@example.com"})
