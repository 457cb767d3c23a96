import base64

from protocol.framing import send_message
from protocol.message import FileData, FileNotFound, ServedFiles
from utils.helpers import get_logger, split_frames

logger = get_logger(__name__)

# raw bytes per "file" message, below the 64 KiB framing limit once base64 encoded
FRAME_SIZE = 32000


class FileHandler:
    def __init__(self, catalog, addr, frame_size=FRAME_SIZE):
        self.catalog = catalog
        self.addr = addr
        self.frame_size = frame_size

    def handle_list_files(self, sock):
        files = self.catalog.file_infos()
        logger.debug(f"Sending list of {len(files)} served files to {self.addr}")
        send_message(sock, ServedFiles(tuple(files)))

    def handle_file_request(self, sock, msg):
        """
        Send the file identified by msg.hash as a countdown of base64 chunks,
        or fileNotFound. Returns the number of chunks sent.
        """
        logger.debug(f"Received file request for '{msg.hash}' from {self.addr}")
        path = self.catalog.resolve_path(msg.hash)
        if path is None:
            logger.error(f"File '{msg.hash}' not found in shared directory")
            send_message(sock, FileNotFound())
            return 0
        try:
            with open(path, "rb") as f:
                file_data = f.read()
        except OSError as e:
            logger.error(f"Could not read {path}: {e}")
            send_message(sock, FileNotFound())
            return 0

        frames = split_frames(file_data, self.frame_size)
        total = len(frames)
        for i, frame in enumerate(frames):
            encoded = base64.b64encode(frame).decode('ascii')
            send_message(sock, FileData(encoded, total - i - 1))
        logger.debug(f"Sent '{path}' ({len(file_data)} bytes) in {total} chunks to {self.addr}")
        return total
