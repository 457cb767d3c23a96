import base64
import binascii
import os
import socket

from crypto.integrity import file_checksum, hash_matches
from protocol.errors import PeerProtocolError
from protocol.framing import recv_message, send_message
from protocol.message import Close, Download, FileData, FileNotFound, GetFiles, ServedFiles
from utils.helpers import get_logger

logger = get_logger(__name__)

CONNECT_TIMEOUT = 6.0
READ_TIMEOUT = 10.0


class ChunkReassembler:
    """
    Writes the chunks of one download to file_path and checks the result
    against the requested hash. The file is only created when the first
    chunk arrives; any failure removes it.
    """

    def __init__(self, target_hash, file_path):
        self.target_hash = target_hash
        self.file_path = file_path
        self._out = None
        self.received = 0
        self.chunks = 0

    def feed(self, msg):
        """Append one chunk. Returns True once the last chunk is written."""
        try:
            data = base64.b64decode(msg.data, validate=True)
        except binascii.Error as e:
            raise PeerProtocolError(f"Chunk is not valid base64: {e}") from None
        if self._out is None:
            folder = os.path.dirname(self.file_path)
            if folder:
                os.makedirs(folder, exist_ok=True)
            self._out = open(self.file_path, "wb")
        self._out.write(data)
        self.received += len(data)
        self.chunks += 1
        return msg.last

    def verify(self):
        """Close the output and compare its checksum with the requested hash."""
        self._close()
        digest = file_checksum(self.file_path)
        if hash_matches(digest, self.target_hash):
            return True
        logger.error(f"Checksum {digest} does not match requested hash {self.target_hash}")
        self.discard()
        return False

    def discard(self):
        self._close()
        try:
            os.remove(self.file_path)
        except FileNotFoundError:
            pass

    def _close(self):
        if self._out is not None:
            self._out.close()
            self._out = None


class PeerConnector:
    """
    Client end of a connection to a peer that serves files.
    """

    def __init__(self, server_address, sock=None):
        self.server_address = server_address
        if sock is None:
            sock = socket.create_connection(server_address, timeout=CONNECT_TIMEOUT)
        sock.settimeout(READ_TIMEOUT)
        self.sock = sock
        logger.debug(f"Connected to peer at {server_address[0]}:{server_address[1]}")

    def download(self, target_hash, file_path):
        """
        Download the file identified by target_hash (or a prefix of it) into
        file_path. Returns a status dict; only "downloaded" leaves a file
        behind.
        """
        if os.path.exists(file_path):
            return {"status": "exists", "reason": f"{file_path} already exists"}
        reassembler = ChunkReassembler(target_hash, file_path)
        try:
            send_message(self.sock, Download(target_hash))
            while True:
                msg = recv_message(self.sock)
                if isinstance(msg, FileNotFound):
                    logger.error(f"Requested file by hash '{target_hash}' could not be found")
                    reassembler.discard()
                    return {"status": "not_found", "reason": "File not found"}
                if not isinstance(msg, FileData):
                    raise PeerProtocolError(f"Unexpected {msg.operation} during download")
                if reassembler.feed(msg):
                    break
            if not reassembler.verify():
                return {"status": "corrupted", "reason": "Checksum mismatch"}
        except (OSError, PeerProtocolError) as e:
            logger.error(f"Download of '{target_hash}' failed: {e}")
            reassembler.discard()
            return {"status": "error", "reason": str(e)}
        logger.info(f"Downloaded '{target_hash}' to {file_path} "
                    f"({reassembler.received} bytes, {reassembler.chunks} chunks)")
        return {"status": "downloaded", "path": file_path, "size": reassembler.received}

    def query_files(self):
        send_message(self.sock, GetFiles())
        msg = recv_message(self.sock)
        if not isinstance(msg, ServedFiles):
            raise PeerProtocolError(f"Expected {ServedFiles.operation}, got {msg.operation}")
        return list(msg.files)

    def close(self):
        """Tell the server the session is over and close the socket."""
        try:
            send_message(self.sock, Close())
        finally:
            self.sock.close()
