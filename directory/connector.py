import socket

from directory import message as dm
from protocol.errors import DirectoryUnreachableError, MalformedMessageError
from utils.helpers import get_logger

logger = get_logger(__name__)

DEFAULT_PORT = 6868
TIMEOUT_MS = 1000
MAX_NUMBER_OF_ATTEMPTS = 5


class ReliableChannel:
    """
    Request/response over UDP with timeout and retransmission.

    The request is sent, then re-sent verbatim every time the timeout expires,
    until a datagram arrives or max_attempts waits have elapsed. Responses are
    not matched to requests: a late reply to a retransmitted request is taken
    as the answer to whatever is asked next, and the directory may execute a
    non-idempotent request (register, serve files) twice if the network
    duplicates it. The protocol carries no request id to tell them apart.
    """

    def __init__(self, address, timeout_ms=TIMEOUT_MS, max_attempts=MAX_NUMBER_OF_ATTEMPTS, sock=None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.address = address
        self.timeout = timeout_ms / 1000.0
        self.max_attempts = max_attempts
        self.sock = sock if sock is not None else socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.closed = False

    def exchange(self, request: bytes) -> bytes:
        if self.closed:
            raise DirectoryUnreachableError(self.address, 0)
        self.sock.settimeout(self.timeout)
        self.sock.sendto(request, self.address)
        attempts = 0
        while True:
            try:
                response, _ = self.sock.recvfrom(dm.PACKET_MAX_SIZE)
                return response
            except socket.timeout:
                attempts += 1
                if attempts >= self.max_attempts:
                    logger.error(f"No response from directory at {self.address[0]}:{self.address[1]}. "
                                 f"Maximum number of tries reached")
                    raise DirectoryUnreachableError(self.address, attempts)
                logger.warning(f"No response from directory. Trying again... ({attempts}/{self.max_attempts})")
                self.sock.sendto(request, self.address)

    def close(self):
        if not self.closed:
            self.closed = True
            self.sock.close()


class DirectoryConnector:
    """
    One method per exchange with the directory. Negative answers
    (nickname taken, user not serving) come back as values; a reply that
    cannot be decoded, or is not a legal answer to the request, raises
    MalformedMessageError. Once the directory has been unreachable the
    connector is closed and every further call raises
    DirectoryUnreachableError.
    """

    def __init__(self, host, port=DEFAULT_PORT, timeout_ms=TIMEOUT_MS,
                 max_attempts=MAX_NUMBER_OF_ATTEMPTS, sock=None):
        self.directory_address = (host, int(port))
        self.channel = ReliableChannel(self.directory_address, timeout_ms, max_attempts, sock=sock)

    def _request(self, request, *expected):
        try:
            data = self.channel.exchange(dm.encode(request))
        except DirectoryUnreachableError:
            self.channel.close()
            raise
        response = dm.decode(data)
        if response is None:
            raise MalformedMessageError(f"Undecodable answer to {request.operation}", data)
        if not isinstance(response, expected):
            raise MalformedMessageError(
                f"Unexpected answer {response.operation} to {request.operation}", data)
        logger.debug(f"{request.operation} -> {response.operation}")
        return response

    def log_into_directory(self):
        """Returns the number of peers currently serving files."""
        response = self._request(dm.Login(), dm.LoginOk)
        return response.servers

    def register_nickname(self, nickname):
        response = self._request(dm.Register(nickname), dm.RegisterOk, dm.RegisterFail)
        if isinstance(response, dm.RegisterFail):
            logger.info(f"Nickname '{nickname}' already in use")
            return False
        return True

    def get_user_list(self):
        return self._request(dm.GetUsers(), dm.UserList).users

    def serve_files(self, port, nickname, files):
        self._request(dm.ServeFiles(nickname, int(port), tuple(files)), dm.ServeFilesOk)
        return True

    def lookup_user(self, nickname):
        """Address (ip, port) the peer serves on, or None if it is not serving."""
        response = self._request(dm.Lookup(nickname), dm.LookupFound, dm.LookupNotFound)
        if isinstance(response, dm.LookupNotFound):
            return None
        return response.address

    def stop_serving(self, nickname):
        self._request(dm.StopServing(nickname), dm.StopServingOk)
        return True

    def get_files(self):
        return self._request(dm.GetFiles(), dm.FileList).files

    def log_off(self, nickname):
        self._request(dm.Logoff(nickname), dm.Quit)
        self.close()
        return True

    def close(self):
        self.channel.close()
