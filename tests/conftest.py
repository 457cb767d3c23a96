import os
import socket

import pytest

from peer.file_store import FileCatalog


class FakeDatagramSocket:
    """
    Stand-in for a UDP socket. Each queued response is either the bytes to
    return from recvfrom or None to simulate an expired timeout.
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.sent = []
        self.timeouts = []
        self.closed = False

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def sendto(self, data, address):
        self.sent.append((bytes(data), address))

    def recvfrom(self, bufsize):
        if not self.responses:
            raise socket.timeout("timed out")
        response = self.responses.pop(0)
        if response is None:
            raise socket.timeout("timed out")
        return response, ("127.0.0.1", 6868)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_udp():
    return FakeDatagramSocket


@pytest.fixture
def shared_dir(tmp_path):
    folder = tmp_path / "shared"
    folder.mkdir()
    (folder / "hello.txt").write_bytes(b"hello nanofiles\n")
    (folder / "big.bin").write_bytes(os.urandom(3 * 32000 + 1234))
    (folder / "empty.dat").write_bytes(b"")
    return folder


@pytest.fixture
def catalog(shared_dir):
    return FileCatalog(str(shared_dir))


@pytest.fixture
def download_dir(tmp_path):
    folder = tmp_path / "downloads"
    folder.mkdir()
    return folder


@pytest.fixture
def socket_pair():
    a, b = socket.socketpair()
    a.settimeout(5)
    b.settimeout(5)
    yield a, b
    a.close()
    b.close()
