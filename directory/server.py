import random
import socket
import threading

from directory import message as dm
from directory.connector import DEFAULT_PORT
from directory.state import DirectoryState
from utils.helpers import get_logger

logger = get_logger(__name__)

POLL_TIMEOUT = 0.5


class DirectoryServer:
    """
    UDP directory. Datagrams are handled strictly one after another: the
    state change and the answer for a request are done before the next
    datagram is read.

    discard_probability drops incoming datagrams before they are looked at,
    to exercise the retransmission of clients.
    """

    def __init__(self, port=DEFAULT_PORT, discard_probability=0.0, host="0.0.0.0",
                 state=None, rng=None, advertise=False):
        if not 0.0 <= discard_probability < 1.0:
            raise ValueError("discard_probability must be in [0, 1)")
        self.host = host
        self.port = int(port)
        self.discard_probability = discard_probability
        self.state = state if state is not None else DirectoryState()
        self.rng = rng if rng is not None else random.Random()
        self.advertise = advertise
        self.broadcast = None
        self.sock = None
        self._stop_evt = threading.Event()

    def bind(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((self.host, self.port))
        sock.settimeout(POLL_TIMEOUT)
        self.sock = sock
        self.port = sock.getsockname()[1]
        return self.port

    def handle_datagram(self, data, client_addr):
        """
        Process one received datagram. Returns the encoded answer, or None
        when nothing must be sent back (discarded or undecodable datagram).
        """
        if self.rng.random() < self.discard_probability:
            logger.warning(f"Directory DISCARDED datagram from {client_addr[0]}:{client_addr[1]}")
            return None
        if not data:
            logger.warning(f"Directory received EMPTY datagram from {client_addr[0]}:{client_addr[1]}")
            return None
        logger.debug(f"Datagram received from client at addr {client_addr[0]}:{client_addr[1]}, "
                     f"operation: {dm.opcode_to_operation(data[0])}")
        request = dm.decode(data)
        if request is None:
            logger.error(f"Malformed datagram from {client_addr[0]}:{client_addr[1]} ({len(data)} bytes)")
            return None
        response = self.process_request(request, client_addr)
        if response is None:
            logger.warning(f"Ignoring {request.operation} from {client_addr[0]}:{client_addr[1]}, not a request")
            return None
        return response.encode()

    def process_request(self, request, client_addr):
        state = self.state
        if isinstance(request, dm.Login):
            return dm.LoginOk(state.server_count())
        if isinstance(request, dm.Register):
            if request.nickname.endswith(dm.SERVER_IDENTIFIER):
                # would read back from USER_LIST as a serving peer
                logger.warning(f"Rejected nickname '{request.nickname}' ending with the server marker")
                return dm.RegisterFail()
            if state.register(request.nickname):
                return dm.RegisterOk()
            return dm.RegisterFail()
        if isinstance(request, dm.GetUsers):
            return dm.UserList(state.users())
        if isinstance(request, dm.ServeFiles):
            # the TCP address is the sender's IP with the advertised port
            state.publish(request.nickname, (client_addr[0], request.port), request.files)
            return dm.ServeFilesOk()
        if isinstance(request, dm.Lookup):
            address = state.lookup(request.nickname)
            if address is None:
                return dm.LookupNotFound()
            return dm.LookupFound(*address)
        if isinstance(request, dm.Logoff):
            state.unregister(request.nickname)
            return dm.Quit()
        if isinstance(request, dm.StopServing):
            state.unpublish(request.nickname)
            return dm.StopServingOk()
        if isinstance(request, dm.GetFiles):
            return dm.FileList(state.published_files())
        return None

    def run(self):
        if self.sock is None:
            self.bind()
        if self.advertise:
            from directory.broadcast import DirectoryBroadcast
            self.broadcast = DirectoryBroadcast(self.port)
            self.broadcast.start_service()
        logger.info(f"Directory starting on {self.host}:{self.port} "
                    f"(discard probability {self.discard_probability})")
        try:
            while not self._stop_evt.is_set():
                try:
                    data, client_addr = self.sock.recvfrom(dm.PACKET_MAX_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._stop_evt.is_set():
                        logger.error(f"Directory socket failure: {e}")
                    break
                response = self.handle_datagram(data, client_addr)
                if response is None:
                    continue
                try:
                    self.sock.sendto(response, client_addr)
                except OSError as e:
                    logger.error(f"Could not answer {client_addr[0]}:{client_addr[1]}: {e}")
        finally:
            if self.broadcast is not None:
                self.broadcast.stop_service()
                self.broadcast = None
            self.sock.close()
            logger.info("Directory stopped")

    def start_service(self):
        if self.sock is None:
            self.bind()
        thread = threading.Thread(target=self.run, daemon=True)
        thread.start()
        return thread

    def stop(self):
        self._stop_evt.set()
