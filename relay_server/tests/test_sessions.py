import json
from pathlib import Path

from app.core.types import ControlFlags, ConversationContext
from app.runtime_state import SessionStore


def _context(**injection) -> ConversationContext:
    return ConversationContext(injection=dict(injection), payload={"global": {"session_id": "s1"}})


def test_unknown_id_yields_default_skeleton_without_side_effect(store: SessionStore) -> None:
    """
    Reading unknown ids always returns an equivalent default context and
    never creates an entry.
    """
    for cid in ("1", "2", "1"):
        ctx = store.get(cid)
        assert ctx == ConversationContext()
        assert ctx.injection == {}
        assert ctx.control.skip_user_input is False

    assert store.count() == 0
    assert store.to_dict() == {"sessions": {}}


def test_put_then_get_returns_copy(store: SessionStore) -> None:
    original = _context(first_name="Ana")
    store.put("42", original)

    loaded = store.get("42")
    assert loaded == original

    # Mutating what we got back (or what we stored) must not leak into the store.
    loaded.injection["first_name"] = "Bia"
    original.payload["global"]["session_id"] = "changed"
    again = store.get("42")
    assert again.injection["first_name"] == "Ana"
    assert again.payload["global"]["session_id"] == "s1"


def test_put_overwrites_previous_context(store: SessionStore) -> None:
    store.put("42", _context(step=1))
    store.put("42", _context(step=2))

    assert store.get("42").injection == {"step": 2}
    assert store.count() == 1


def test_ttl_expiry_reads_as_absent(clock) -> None:
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("42", _context(x=1))

    clock.advance(59)
    assert store.get("42").injection == {"x": 1}

    clock.advance(2)
    assert store.get("42") == ConversationContext()
    assert store.get_entry("42") is None
    assert store.count() == 0


def test_put_after_expiry_starts_new_entry(clock) -> None:
    store = SessionStore(ttl_seconds=10, clock=clock)
    store.put("42", _context(x=1))
    first_created = store.get_entry("42").created_at

    clock.advance(30)
    store.put("42", _context(x=2))

    entry = store.get_entry("42")
    assert entry.created_at > first_created
    assert entry.context.injection == {"x": 2}


def test_prune_stale_sessions(clock) -> None:
    store = SessionStore(ttl_seconds=10, clock=clock)
    store.put("old", _context())
    clock.advance(11)
    store.put("fresh", _context())

    assert store.prune_stale_sessions() == 1
    assert set(store.state.sessions) == {"fresh"}


def test_prune_without_ttl_is_noop(store: SessionStore) -> None:
    store.put("a", _context())
    assert store.prune_stale_sessions() == 0
    assert store.count() == 1


def test_max_sessions_evicts_least_recently_written(clock) -> None:
    store = SessionStore(max_sessions=2, clock=clock)
    store.put("a", _context())
    clock.advance(1)
    store.put("b", _context())
    clock.advance(1)
    store.put("a", _context(touched=True))
    clock.advance(1)
    store.put("c", _context())

    assert set(store.state.sessions) == {"a", "c"}


def test_delete_session(store: SessionStore) -> None:
    store.put("a", _context())
    assert store.delete_session("a") is True
    assert store.delete_session("a") is False
    assert store.get("a") == ConversationContext()


def test_snapshot_survives_restart(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    first = SessionStore(path=path)
    first.put(
        "42",
        ConversationContext(
            injection={"first_name": "Ana"},
            control=ControlFlags(skip_user_input=False),
            payload={"skills": {"actions skill": {"system": {"state": "abc"}}}},
        ),
    )
    assert path.is_file()

    second = SessionStore(path=path)
    loaded = second.get("42")
    assert loaded.injection == {"first_name": "Ana"}
    assert loaded.payload["skills"]["actions skill"]["system"]["state"] == "abc"


def test_corrupt_snapshot_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text("{not json", encoding="utf-8")

    store = SessionStore(path=path)
    assert store.count() == 0


def test_invalid_snapshot_shape_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text(json.dumps({"sessions": {"a": {"context": 5}}}), encoding="utf-8")

    store = SessionStore(path=path)
    assert store.count() == 0
