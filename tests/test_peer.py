import pytest

import peer.peer as peer_module
from config import DEFAULTS
from crypto.integrity import file_checksum
from directory.connector import DirectoryConnector
from directory.server import DirectoryServer
from peer.peer import Peer


@pytest.fixture
def directory_server():
    server = DirectoryServer(port=0, host="127.0.0.1")
    server.bind()
    thread = server.start_service()
    yield server
    server.stop()
    thread.join(timeout=5)


def make_config(server, shared, downloads):
    config = dict(DEFAULTS)
    config.update(directory_host="127.0.0.1", directory_port=server.port, listen_port=0,
                  shared_dir=str(shared), download_dir=str(downloads),
                  timeout_ms=500, accept_timeout=0.1)
    return config


def scripted(*lines):
    it = iter(lines)
    return lambda *prompt: next(it)


def test_publish_browse_download_and_stop(directory_server, shared_dir, download_dir, tmp_path):
    empty = tmp_path / "bob-shared"
    empty.mkdir()
    alice = Peer(make_config(directory_server, shared_dir, tmp_path / "unused"))
    bob = Peer(make_config(directory_server, empty, download_dir))

    assert alice.login() and alice.register("alice")
    assert alice.start_serving()
    assert bob.login() and bob.register("bob")

    users = {u.name: u.serving for u in bob.users()}
    assert users == {"alice": True, "bob": False}
    assert len(bob.files()) == 3

    assert bob.browse("alice")
    assert len(bob.query()) == 3
    digest = file_checksum(shared_dir / "big.bin")
    assert bob.download(digest, "copy.bin")["status"] == "downloaded"
    assert (download_dir / "copy.bin").read_bytes() == (shared_dir / "big.bin").read_bytes()
    bob.close_browser()

    assert alice.stop_serving()
    assert bob.files() == ()
    assert not bob.browse("alice")

    assert alice.quit() and bob.quit()
    assert directory_server.state.nicks == {}


def test_browse_by_address_skips_directory(directory_server, shared_dir, download_dir):
    alice = Peer(make_config(directory_server, shared_dir, download_dir))
    alice.login()
    alice.register("alice")
    alice.start_serving()
    visitor = Peer(make_config(directory_server, shared_dir, download_dir))
    try:
        assert visitor.browse(f"127.0.0.1:{alice.listener.port}")
        assert len(visitor.query()) == 3
    finally:
        visitor.close_browser()
        alice.quit()


def test_nickname_with_colon_is_rejected_locally(directory_server, shared_dir, download_dir):
    p = Peer(make_config(directory_server, shared_dir, download_dir))
    p.login()
    assert p.register("ali:ce") is False
    assert directory_server.state.nicks == {}
    p.quit()


def test_serving_requires_a_nickname(directory_server, shared_dir, download_dir):
    p = Peer(make_config(directory_server, shared_dir, download_dir))
    p.login()
    assert p.start_serving() is False
    p.quit()


def test_foreground_serve_until_fgstop(directory_server, shared_dir, download_dir):
    p = Peer(make_config(directory_server, shared_dir, download_dir), input_func=scripted("status", "fgstop"))
    p.login()
    p.register("alice")
    assert p.serve() is True
    assert p.listener is None
    assert directory_server.state.lookup("alice") is None
    p.quit()


def test_shell_commands(directory_server, shared_dir, download_dir, capsys):
    p = Peer(make_config(directory_server, shared_dir, download_dir),
             input_func=scripted("help", "nick", "login", "nick alice", "users", "teleport", "quit"))
    p.run_cli()
    out = capsys.readouterr().out
    assert "Commands:" in out
    assert "Usage: nick <name>" in out
    assert "Registered as 'alice'" in out
    assert " - alice" in out
    assert "Unknown command" in out
    assert directory_server.state.nicks == {}


def test_shell_exits_when_directory_is_unreachable(fake_udp, shared_dir, download_dir, monkeypatch, capsys):
    def silent_connector(host, port, timeout_ms, max_attempts):
        return DirectoryConnector(host, port, timeout_ms, max_attempts, sock=fake_udp())

    monkeypatch.setattr(peer_module, "DirectoryConnector", silent_connector)
    config = dict(DEFAULTS, shared_dir=str(shared_dir), download_dir=str(download_dir))
    p = Peer(config, input_func=scripted("login", "users"))
    p.run_cli()
    assert "Directory unreachable" in capsys.readouterr().out
    assert p.directory is None


def test_login_registers_configured_peer_name(directory_server, shared_dir, download_dir):
    config = make_config(directory_server, shared_dir, download_dir)
    config["peer_name"] = "alice"
    p = Peer(config)
    assert p.login()
    assert p.nickname == "alice"
    assert directory_server.state.is_registered("alice")
    p.quit()
    assert directory_server.state.nicks == {}


def test_listener_is_closed_when_publishing_fails(directory_server, shared_dir, download_dir, monkeypatch):
    p = Peer(make_config(directory_server, shared_dir, download_dir))
    p.login()
    p.register("alice")
    bound = []

    class RecordingListener(peer_module.PeerListener):
        def bind(self):
            bound.append(self)
            return super().bind()

    def refuse(*args):
        raise OSError("Message too long")

    monkeypatch.setattr(peer_module, "PeerListener", RecordingListener)
    monkeypatch.setattr(p.directory, "serve_files", refuse)
    with pytest.raises(OSError):
        p.start_serving()
    assert p.listener is None
    assert bound[0].sock.fileno() == -1
    p.quit()


def test_unknown_hash_does_not_create_download_folder(directory_server, shared_dir, tmp_path):
    downloads = tmp_path / "not-yet"
    alice = Peer(make_config(directory_server, shared_dir, tmp_path / "unused"))
    alice.login()
    alice.register("alice")
    alice.start_serving()
    bob = Peer(make_config(directory_server, shared_dir, downloads))
    try:
        assert bob.browse(f"127.0.0.1:{alice.listener.port}")
        assert bob.download("0" * 40, "missing.bin")["status"] == "not_found"
        assert not downloads.exists()
    finally:
        bob.close_browser()
        alice.quit()
