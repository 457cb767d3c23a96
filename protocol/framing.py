import struct

from protocol.errors import PeerProtocolError
from protocol.message import parse, render

# unsigned 16-bit byte count before every message
_LENGTH = struct.Struct(">H")
MAX_MESSAGE_BYTES = 0xFFFF


def send_text(sock, text):
    """
    Send one text message over a socket, preceded by its UTF-8 byte length.
    """
    data = text.encode('utf-8')
    if len(data) > MAX_MESSAGE_BYTES:
        raise PeerProtocolError(f"Message of {len(data)} bytes exceeds {MAX_MESSAGE_BYTES}")
    sock.sendall(_LENGTH.pack(len(data)) + data)


def _recv_exact(sock, n):
    buffer = b""
    while len(buffer) < n:
        chunk = sock.recv(n - len(buffer))
        if not chunk:
            raise ConnectionError("Socket closed while receiving data.")
        buffer += chunk
    return buffer


def recv_text(sock):
    """
    Receive one length-prefixed text message from a socket.
    """
    (length,) = _LENGTH.unpack(_recv_exact(sock, _LENGTH.size))
    try:
        return _recv_exact(sock, length).decode('utf-8')
    except UnicodeDecodeError as e:
        raise PeerProtocolError(f"Message is not valid UTF-8: {e}") from None


def send_message(sock, message):
    send_text(sock, render(message))


def recv_message(sock):
    return parse(recv_text(sock))
