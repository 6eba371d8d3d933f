"""
Unit tests for the in-memory session store.
"""

import pytest

from models import FormatType, MenuState, Session
from sessions import SessionStore


def _session(chat_id=1, **overrides):
    fields = dict(
        chat_id=chat_id,
        original_url="https://youtube.com/watch?v=test",
        title="Song X",
        clean_title="Song X",
        platform="youtube",
        duration=200,
        progress_message_id=10,
    )
    fields.update(overrides)
    return Session(**fields)


def test_new_keys_are_random_hex():
    first, second = SessionStore.new_key(), SessionStore.new_key()
    assert first != second
    assert len(first) == 16
    int(first, 16)


def test_create_get_delete():
    store = SessionStore()
    store.create("abc", _session())

    assert "abc" in store
    assert store.get("abc").title == "Song X"
    assert store.delete("abc") is True
    assert store.get("abc") is None
    assert store.delete("abc") is False


def test_create_rejects_existing_key():
    store = SessionStore()
    store.create("abc", _session())
    with pytest.raises(KeyError):
        store.create("abc", _session())


def test_update_missing_session_returns_none():
    assert SessionStore().update("missing", quality="720p") is None


def test_read_back_after_update_is_unchanged():
    store = SessionStore()
    store.create("abc", _session())
    store.update("abc", format_type=FormatType.AUDIO_192, quality="192kbps")

    first = store.get("abc")
    second = store.get("abc")
    assert first == second
    assert first.format_type == FormatType.AUDIO_192
    assert first.quality == "192kbps"
    assert (first.title, first.clean_title, first.platform, first.duration) == (
        "Song X",
        "Song X",
        "youtube",
        200,
    )


def test_mutating_a_read_copy_does_not_touch_the_store():
    store = SessionStore()
    store.create("abc", _session())

    copy = store.get("abc")
    copy.quality = "hacked"
    assert store.get("abc").quality is None


def test_find_by_chat():
    store = SessionStore()
    store.create("a", _session(chat_id=1))
    store.create("b", _session(chat_id=2))
    store.create("c", _session(chat_id=1))
    assert sorted(store.find_by_chat(1)) == ["a", "c"]


def test_idle_sessions_expire_but_running_ones_stay():
    now = [1000.0]
    store = SessionStore(ttl_seconds=60, clock=lambda: now[0])
    store.create("idle", _session(created_at=1000.0))
    store.create("running", _session(created_at=1000.0, download_process=object()))

    now[0] = 1061.0
    assert store.get("idle") is None
    assert store.get("running") is not None


def test_expiry_counts_from_last_activity():
    now = [1000.0]
    store = SessionStore(ttl_seconds=60, clock=lambda: now[0])
    store.create("abc", _session())

    now[0] = 1050.0
    store.update("abc", menu_state=MenuState.AUDIO_MENU)
    now[0] = 1100.0
    assert store.get("abc") is not None

    now[0] = 1111.0
    assert store.get("abc") is None


def test_supervised_sessions_are_never_swept():
    now = [1000.0]
    store = SessionStore(ttl_seconds=60, clock=lambda: now[0])
    store.create("abc", _session(supervised=True))

    now[0] = 5000.0
    assert store.get("abc") is not None
