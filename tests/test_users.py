import json
import os
import threading
from pathlib import Path

import pytest

from app.errors import StoreIOError
from app.services.sessions import SessionStore
from app.services.users import Freshness, User, UserStore
from app.services.validator import JsonValidatorService


def _external_write(path: Path, records) -> None:
    """Rewrite user.json behind the store's back with a strictly newer mtime."""
    before = path.stat().st_mtime_ns
    path.write_text(json.dumps(records, indent=2), encoding="utf-8")
    os.utime(path, ns=(before, before + 2_000_000_000))


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture
def store(tmp_path: Path, sessions: SessionStore) -> UserStore:
    s = UserStore(tmp_path / "user.json", on_external_change=sessions.clear_all_sessions)
    s.load()
    s.ensure_default_admin("admin", "admin")
    return s


def test_bootstrap_creates_single_admin(store: UserStore, tmp_path: Path):
    assert store.list_users() == [User("admin", "admin")]
    text = (tmp_path / "user.json").read_text(encoding="utf-8")
    assert text.startswith('[\n  {\n    "username"')
    assert json.loads(text) == [{"username": "admin", "password": "admin"}]

    assert store.authenticate("admin", "admin") is True
    assert store.authenticate("admin", "wrong") is False
    assert store.authenticate("ghost", "admin") is False


def test_bootstrap_skipped_when_users_exist(store: UserStore):
    assert store.ensure_default_admin("root", "root") is False
    assert store.get_user("root") is None


def test_missing_file_loads_empty(tmp_path: Path):
    s = UserStore(tmp_path / "absent" / "user.json")
    s.load()
    assert s.list_users() == []


def test_save_load_round_trip_ignores_order(tmp_path: Path):
    s = UserStore(tmp_path / "user.json")
    for name in ["zoe", "adam", "mia"]:
        s.add_user(name, f"{name}-pw")

    again = UserStore(tmp_path / "user.json")
    again.load()
    assert set(again.list_users()) == {
        User("zoe", "zoe-pw"), User("adam", "adam-pw"), User("mia", "mia-pw")
    }


def test_last_duplicate_record_wins(tmp_path: Path):
    (tmp_path / "user.json").write_text(
        json.dumps([{"username": "a", "password": "1"}, {"username": "a", "password": "2"}]),
        encoding="utf-8",
    )
    s = UserStore(tmp_path / "user.json")
    s.load()
    assert s.get_user("a") == User("a", "2")


@pytest.mark.parametrize("content", ["not json", '{"username": "a"}', '[{"username": "a"}]'])
def test_malformed_file_fails_load(tmp_path: Path, content: str):
    (tmp_path / "user.json").write_text(content, encoding="utf-8")
    s = UserStore(tmp_path / "user.json")
    with pytest.raises(StoreIOError):
        s.load()


def test_own_saves_are_not_external_changes(store: UserStore, sessions: SessionStore):
    token = sessions.create_session("admin")
    store.add_user("bob", "pw")
    assert store.authenticate("bob", "pw") is True
    store.remove_user("bob")
    assert store.authenticate("bob", "pw") is False
    assert sessions.validate_and_touch(token) is True


def test_external_change_consumes_attempt_and_clears_sessions(
    store: UserStore, sessions: SessionStore, tmp_path: Path
):
    token = sessions.create_session("admin")
    _external_write(
        tmp_path / "user.json",
        [{"username": "admin", "password": "admin"}, {"username": "bob", "password": "pw"}],
    )

    assert store.authenticate("bob", "pw") is False
    assert sessions.validate_and_touch(token) is False
    assert store.authenticate("bob", "pw") is True
    assert store.state is Freshness.FRESH


def test_external_change_fails_any_username(store: UserStore, tmp_path: Path):
    _external_write(tmp_path / "user.json", [{"username": "admin", "password": "admin"}])
    assert store.authenticate("admin", "admin") is False
    assert store.authenticate("admin", "admin") is True


def test_reload_runs_in_reloading_state(tmp_path: Path):
    seen = []

    class SpyValidator(JsonValidatorService):
        def errors(self, instance, schema):
            seen.append(s.state)
            return super().errors(instance, schema)

    s = UserStore(tmp_path / "user.json", validator=SpyValidator())
    s.add_user("admin", "admin")
    _external_write(tmp_path / "user.json", [{"username": "admin", "password": "new"}])

    assert s.authenticate("admin", "new") is False
    assert seen == [Freshness.RELOADING]
    assert s.state is Freshness.FRESH


def test_malformed_reload_keeps_previous_users(store: UserStore, sessions: SessionStore, tmp_path: Path):
    token = sessions.create_session("admin")
    path = tmp_path / "user.json"
    before = path.stat().st_mtime_ns
    path.write_text("{broken", encoding="utf-8")
    os.utime(path, ns=(before, before + 2_000_000_000))

    assert store.authenticate("admin", "admin") is False
    assert sessions.validate_and_touch(token) is False
    assert store.authenticate("admin", "admin") is True


def test_vanished_file_empties_store(store: UserStore, tmp_path: Path):
    calls = []
    store._on_external_change = lambda: calls.append(1)
    (tmp_path / "user.json").unlink()

    assert store.authenticate("admin", "admin") is False
    assert store.authenticate("admin", "admin") is False
    assert calls == [1]
    assert store.list_users() == []


def test_credential_checker_is_pluggable(tmp_path: Path):
    class AcceptReversed:
        def matches(self, stored, supplied):
            return stored == supplied[::-1]

    s = UserStore(tmp_path / "user.json", credentials=AcceptReversed())
    s.add_user("amy", "abc")
    assert s.authenticate("amy", "cba") is True
    assert s.authenticate("amy", "abc") is False


def test_bootstrap_write_failure_is_tolerated(tmp_path: Path):
    target = tmp_path / "user.json"
    target.mkdir()
    s = UserStore(target)
    assert s.ensure_default_admin("admin", "admin") is True
    assert s.get_user("admin") == User("admin", "admin")


def test_bootstrap_write_failure_can_be_fatal(tmp_path: Path):
    target = tmp_path / "user.json"
    target.mkdir()
    s = UserStore(target)
    with pytest.raises(StoreIOError):
        s.ensure_default_admin("admin", "admin", fatal=True)


def test_save_then_fresh_load_round_trip(tmp_path: Path):
    s = UserStore(tmp_path / "user.json")
    s.load()
    s._users.update({"zoe": User("zoe", "1"), "adam": User("adam", "2")})
    s.save()

    again = UserStore(tmp_path / "user.json")
    again.load()
    assert set(again.list_users()) == {User("zoe", "1"), User("adam", "2")}


def test_concurrent_logins_after_external_edit_reload_once(tmp_path: Path):
    calls = []
    s = UserStore(tmp_path / "user.json", on_external_change=lambda: calls.append(1))
    s.add_user("admin", "admin")
    _external_write(
        tmp_path / "user.json",
        [{"username": "admin", "password": "admin"}, {"username": "bob", "password": "pw"}],
    )

    n = 16
    barrier = threading.Barrier(n)
    results = []
    lock = threading.Lock()

    def login():
        barrier.wait()
        ok = s.authenticate("bob", "pw")
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=login) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # one caller consumed the reload, the rest saw the reloaded mapping
    assert sorted(results) == [False] + [True] * (n - 1)
    assert calls == [1]
    assert s.state is Freshness.FRESH
