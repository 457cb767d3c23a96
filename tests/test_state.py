from datetime import datetime

from directory.message import UserEntry
from directory.state import DirectoryState
from utils.fileinfo import FileInfo

ALICE_FILES = [FileInfo("a.txt", "aa11", 1), FileInfo("b.txt", "bb22", 2), FileInfo("c.txt", "cc33", 3)]


def test_nickname_is_unique():
    state = DirectoryState()
    assert state.register("alice") is True
    assert state.register("alice") is False
    assert list(state.nicks) == ["alice"]


def test_registration_time_is_kept():
    when = datetime(2024, 5, 1, 12, 0)
    state = DirectoryState(clock=lambda: when)
    state.register("alice")
    assert state.registered_at("alice") == when


def test_nickname_can_register_again_after_logoff():
    state = DirectoryState()
    state.register("alice")
    state.unregister("alice")
    assert not state.is_registered("alice")
    assert state.register("alice") is True


def test_unregister_unknown_nickname_is_harmless():
    state = DirectoryState()
    state.unregister("nobody")
    assert state.users() == ()


def test_stop_serving_purges_owned_files():
    state = DirectoryState()
    state.register("alice")
    state.register("bob")
    state.publish("alice", ("10.0.0.1", 9000), ALICE_FILES)
    state.publish("bob", ("10.0.0.2", 9001), [FileInfo("d.txt", "dd44", 4)])
    assert state.server_count() == 2
    assert len(state.published_files()) == 4

    assert state.unpublish("alice") == 3
    assert state.lookup("alice") is None
    assert state.published_files() == (FileInfo("d.txt", "dd44", 4),)
    assert set(state.owners.values()) == {"bob"}
    assert state.is_registered("alice")


def test_same_hash_last_publisher_wins():
    state = DirectoryState()
    state.publish("alice", ("10.0.0.1", 9000), [FileInfo("x.bin", "ff00", 10)])
    state.publish("bob", ("10.0.0.2", 9000), [FileInfo("copy.bin", "ff00", 10)])
    assert state.files["ff00"].name == "copy.bin"
    assert state.owners["ff00"] == "bob"
    state.unpublish("alice")
    assert state.files_of("bob") == (FileInfo("copy.bin", "ff00", 10),)


def test_users_flag_serving_peers():
    state = DirectoryState()
    state.register("alice")
    state.register("bob")
    state.publish("bob", ("10.0.0.2", 9001), [])
    assert state.users() == (UserEntry("alice", False), UserEntry("bob", True))
