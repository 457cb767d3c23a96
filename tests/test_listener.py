import threading
import time

import pytest

from crypto.integrity import file_checksum
from peer.listener import PeerListener
from peer.transfer import PeerConnector


@pytest.fixture
def listener(catalog):
    listener = PeerListener(catalog, port=0, host="127.0.0.1", accept_timeout=0.1)
    listener.bind()
    thread = listener.start_service()
    yield listener
    listener.stop()
    thread.join(timeout=5)


def test_serves_sessions_one_after_another(listener, shared_dir, download_dir):
    address = ("127.0.0.1", listener.port)
    first = PeerConnector(address)
    assert len(first.query_files()) == 3
    first.close()

    second = PeerConnector(address)
    digest = file_checksum(shared_dir / "hello.txt")
    result = second.download(digest, str(download_dir / "hello.txt"))
    second.close()
    assert result["status"] == "downloaded"
    assert listener.sessions == 2


def test_second_peer_waits_for_current_session(listener):
    address = ("127.0.0.1", listener.port)
    first = PeerConnector(address)
    first.query_files()
    second = PeerConnector(address)

    answered = threading.Event()

    def ask():
        second.query_files()
        answered.set()

    threading.Thread(target=ask, daemon=True).start()
    assert not answered.wait(0.5)
    first.close()
    assert answered.wait(5)
    second.close()


def test_stop_is_noticed_while_idle(catalog):
    listener = PeerListener(catalog, port=0, host="127.0.0.1", accept_timeout=0.1)
    listener.bind()
    thread = listener.start_service()
    time.sleep(0.2)
    started = time.monotonic()
    listener.stop()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert time.monotonic() - started < 2
    assert listener.sock is None
