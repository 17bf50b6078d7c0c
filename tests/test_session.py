"""Tests for session persistence, staleness, and cleanup."""
import json
import os
import time

import pytest

from har_analyzer.errors import FormatError, NoSessionError, StaleSessionError
from har_analyzer.session import CURRENT_POINTER, SessionManager, atomic_write_text
from conftest import har_entry


def test_create_session_persists_descriptor(sessions, write_har, sample_entries):
    path = write_har(sample_entries)

    session = sessions.create_session(path)

    descriptor = sessions.descriptor_path(session.session_id)
    assert descriptor.is_file()
    data = json.loads(descriptor.read_text(encoding="utf-8"))
    assert data["sourceFile"] == str(path.resolve())
    assert data["sourceHash"] == session.source_hash
    assert len(data["entries"]) == 3
    assert data["entries"][1]["statusText"] == ""
    # raw bodies never reach the descriptor
    assert "not here" not in descriptor.read_text(encoding="utf-8")


def test_load_session_resumes_without_reparsing(sessions, write_har, sample_entries):
    created = sessions.create_session(write_har(sample_entries))

    resumed = sessions.load_session()

    assert resumed.session_id == created.session_id
    assert resumed.entries == created.entries
    assert resumed.stats == created.stats


def test_load_session_with_nothing_loaded(sessions):
    assert sessions.load_session() is None
    with pytest.raises(NoSessionError) as exc:
        sessions.require_session()
    assert "No session loaded" in str(exc.value)


def test_most_recent_session_wins(sessions, write_har):
    first = sessions.create_session(write_har([har_entry("https://a.com/1")], name="one.har"))
    second = sessions.create_session(write_har([har_entry("https://b.com/2")], name="two.har"))

    assert sessions.load_session().session_id == second.session_id
    assert sessions.load_session(first.session_id[:8]).session_id == first.session_id


def test_current_pointer_tracks_last_load(sessions, write_har):
    session = sessions.create_session(write_har([har_entry()]))
    pointer = sessions.sessions_dir / CURRENT_POINTER
    assert pointer.read_text(encoding="utf-8") == session.session_id


def test_unknown_session_id(sessions, write_har):
    sessions.create_session(write_har([har_entry()]))
    with pytest.raises(NoSessionError) as exc:
        sessions.require_session("ffffffffffffffff")
    assert "ffffffffffffffff" in str(exc.value)


def test_rewritten_source_makes_session_stale(sessions, write_har, sample_entries):
    path = write_har(sample_entries)
    session = sessions.create_session(path)

    write_har(sample_entries[:1])

    with pytest.raises(StaleSessionError) as exc:
        sessions.load_session()
    assert str(path.resolve()) in str(exc.value)
    with pytest.raises(StaleSessionError):
        sessions.load_capture(session)


def test_deleted_source_makes_session_stale(sessions, write_har, sample_entries):
    path = write_har(sample_entries)
    sessions.create_session(path)
    path.unlink()

    with pytest.raises(StaleSessionError) as exc:
        sessions.require_session()
    assert "missing" in str(exc.value)


def test_reload_after_change_recovers(sessions, write_har, sample_entries):
    path = write_har(sample_entries)
    sessions.create_session(path)
    write_har(sample_entries[:1])

    sessions.create_session(path)

    assert sessions.require_session().stats.entry_count == 1


def test_failed_load_keeps_previous_session(sessions, write_har, sample_entries, tmp_path):
    session = sessions.create_session(write_har(sample_entries))
    bad = tmp_path / "bad.har"
    bad.write_text("not json", encoding="utf-8")

    with pytest.raises(FormatError):
        sessions.create_session(bad)

    assert sessions.require_session().session_id == session.session_id


def test_load_capture_returns_raw_entries(sessions, write_har, sample_entries):
    session = sessions.create_session(write_har(sample_entries))
    har_data = sessions.load_capture(session)
    assert har_data["log"]["entries"][1]["response"]["content"]["text"] == "not here"


def test_clean_expired_sessions(tmp_path, write_har):
    manager = SessionManager(tmp_path / "sessions", ttl_hours=1)
    old = manager.create_session(write_har([har_entry("https://a.com/old")], name="old.har"))
    fresh = manager.create_session(write_har([har_entry("https://a.com/new")], name="new.har"))

    two_hours_ago = time.time() - 7200
    os.utime(manager.descriptor_path(old.session_id), (two_hours_ago, two_hours_ago))

    assert manager.clean_expired_sessions() == 1
    assert not manager.descriptor_path(old.session_id).exists()
    assert manager.descriptor_path(fresh.session_id).exists()


def test_clean_expired_sessions_without_directory(tmp_path):
    assert SessionManager(tmp_path / "missing").clean_expired_sessions() == 0


def test_list_sessions_newest_first(sessions, write_har):
    first = sessions.create_session(write_har([har_entry()], name="one.har"))
    second = sessions.create_session(write_har([har_entry(), har_entry()], name="two.har"))
    past = time.time() - 60
    os.utime(sessions.descriptor_path(first.session_id), (past, past))

    listed = sessions.list_sessions()

    assert [s.session_id for s, _ in listed] == [second.session_id, first.session_id]


def test_unreadable_descriptor_is_ignored(sessions, write_har):
    session = sessions.create_session(write_har([har_entry()]))
    (sessions.sessions_dir / "garbage.json").write_text("{", encoding="utf-8")

    assert [s.session_id for s, _ in sessions.list_sessions()] == [session.session_id]


def test_atomic_write_replaces_content(tmp_path):
    target = tmp_path / "file.json"
    atomic_write_text(target, "first")
    atomic_write_text(target, "second")

    assert target.read_text(encoding="utf-8") == "second"
    assert [p.name for p in tmp_path.iterdir()] == ["file.json"]
