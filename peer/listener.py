import socket
import threading

from protocol.handler import serve_files_to_client
from utils.helpers import get_logger

logger = get_logger(__name__)

ACCEPT_TIMEOUT = 1.0


class PeerListener:
    """
    TCP server for other peers. Connections are served one at a time: a
    second peer waits in the backlog until the current session ends. accept()
    times out periodically so a stop request is noticed while idle.
    """

    def __init__(self, catalog, port=0, host="0.0.0.0", accept_timeout=ACCEPT_TIMEOUT):
        self.catalog = catalog
        self.host = host
        self.port = int(port)
        self.accept_timeout = accept_timeout
        self.sock = None
        self.sessions = 0
        self._stop_evt = threading.Event()

    def bind(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.listen()
        sock.settimeout(self.accept_timeout)
        self.sock = sock
        self.port = sock.getsockname()[1]
        logger.debug(f"Listening for incoming connections on port {self.port}")
        return self.port

    def stop(self):
        self._stop_evt.set()

    def run(self):
        if self.sock is None:
            self.bind()
        try:
            while not self._stop_evt.is_set():
                try:
                    conn, addr = self.sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._stop_evt.is_set():
                        logger.error(f"Listener socket failure: {e}")
                    break
                self.handle_connection(conn, addr)
        finally:
            self.sock.close()
            self.sock = None
            logger.info("File server stopped")

    def handle_connection(self, conn, addr):
        logger.debug(f"Accepted connection from {addr}")
        self.sessions += 1
        try:
            conn.settimeout(None)
            result = serve_files_to_client(conn, addr, self.catalog)
            logger.debug(f"Session with {addr} ended: {result}")
            return result
        finally:
            conn.close()

    def start_service(self):
        if self.sock is None:
            self.bind()
        thread = threading.Thread(target=self.run, daemon=True)
        thread.start()
        return thread
