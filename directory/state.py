from datetime import datetime

from directory.message import UserEntry
from utils.helpers import get_logger

logger = get_logger(__name__)


class DirectoryState:
    """
    Registries kept by the directory: registered nicknames, peers serving
    files, published files and the owner of each file.

    Every published file is owned by a peer that is currently serving;
    stopping serving removes the peer's files in the same call. The state is
    only touched by the directory loop, one request at a time.
    """

    def __init__(self, clock=datetime.now):
        self._clock = clock
        self.nicks = {}      # nickname -> registration time
        self.servers = {}    # nickname -> (ip, tcp port)
        self.files = {}      # hash -> FileInfo
        self.owners = {}     # hash -> nickname

    def register(self, nickname):
        """False if the nickname is already taken; it is never overwritten."""
        if nickname in self.nicks:
            return False
        self.nicks[nickname] = self._clock()
        logger.info(f"Registered nickname '{nickname}'")
        return True

    def unregister(self, nickname):
        if self.nicks.pop(nickname, None) is not None:
            logger.info(f"Nickname '{nickname}' logged off")

    def is_registered(self, nickname):
        return nickname in self.nicks

    def registered_at(self, nickname):
        return self.nicks.get(nickname)

    def server_count(self):
        return len(self.servers)

    def users(self):
        return tuple(UserEntry(nick, nick in self.servers) for nick in self.nicks)

    def publish(self, nickname, address, files):
        """
        Record nickname as serving at address and take ownership of files.
        A hash that is already published changes owner (last publisher wins).
        """
        self.servers[nickname] = address
        for f in files:
            previous = self.owners.get(f.hash)
            if previous is not None and previous != nickname:
                logger.warning(f"File {f.hash} re-published by '{nickname}', was owned by '{previous}'")
            self.files[f.hash] = f
            self.owners[f.hash] = nickname
        logger.info(f"'{nickname}' serving {len(files)} files at {address[0]}:{address[1]}")

    def unpublish(self, nickname):
        """Stop serving: drop the server record and every file it owns."""
        self.servers.pop(nickname, None)
        owned = [h for h, owner in self.owners.items() if owner == nickname]
        for h in owned:
            del self.owners[h]
            del self.files[h]
        logger.info(f"'{nickname}' stopped serving, {len(owned)} files removed")
        return len(owned)

    def lookup(self, nickname):
        return self.servers.get(nickname)

    def published_files(self):
        return tuple(self.files.values())

    def files_of(self, nickname):
        return tuple(self.files[h] for h, owner in self.owners.items() if owner == nickname)
