from protocol.errors import PeerProtocolError
from protocol.file_handler import FileHandler
from protocol.framing import recv_message
from protocol.message import Close, Download, GetFiles
from utils.helpers import get_logger

logger = get_logger(__name__)


def serve_files_to_client(sock, addr, catalog):
    """
    Answer requests from one connected peer until it sends close or the
    connection fails. Returns a status dict describing how the session ended.
    """
    file_handler = FileHandler(catalog, addr)
    served = 0
    try:
        while True:
            msg = recv_message(sock)
            logger.debug(f"Received {msg.operation} from {addr}")
            if isinstance(msg, Download):
                if file_handler.handle_file_request(sock, msg):
                    served += 1
            elif isinstance(msg, GetFiles):
                file_handler.handle_list_files(sock)
            elif isinstance(msg, Close):
                return {"status": "closed", "served": served}
            else:
                logger.warning(f"Unexpected message type from {addr}: {msg.operation}")
    except PeerProtocolError as e:
        logger.error(f"Protocol error from {addr}: {e}")
        return {"status": "error", "reason": str(e), "served": served}
    except OSError as e:
        logger.error(f"Connection with {addr} failed: {e}")
        return {"status": "error", "reason": str(e), "served": served}
