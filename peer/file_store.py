import os
from dataclasses import dataclass

from crypto.integrity import file_checksum, hash_matches
from utils.fileinfo import FileInfo
from utils.helpers import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LocalFile:
    name: str
    hash: str
    size: int
    path: str

    def info(self):
        return FileInfo(name=self.name, hash=self.hash, size=self.size)


class FileCatalog:
    """
    Files shared from a local folder, indexed by checksum. The folder is
    scanned on construction and again on refresh(); the catalog is only
    read while serving.
    """

    def __init__(self, shared_dir):
        self.shared_dir = shared_dir
        self._files = {}
        self.refresh()

    def refresh(self):
        files = {}
        if os.path.isdir(self.shared_dir):
            for fname in sorted(os.listdir(self.shared_dir)):
                fpath = os.path.join(self.shared_dir, fname)
                if not os.path.isfile(fpath):
                    continue
                try:
                    digest = file_checksum(fpath)
                    size = os.path.getsize(fpath)
                except OSError as e:
                    logger.warning(f"Skipping unreadable file {fpath}: {e}")
                    continue
                files[digest] = LocalFile(fname, digest, size, fpath)
        else:
            logger.warning(f"Shared folder {self.shared_dir} does not exist")
        self._files = files
        logger.debug(f"{len(files)} files in shared folder {self.shared_dir}")

    def list_local_files(self):
        return list(self._files.values())

    def file_infos(self):
        return [f.info() for f in self._files.values()]

    def lookup(self, target_hash):
        """
        The file identified by target_hash, which may be a prefix of its
        checksum. None when nothing or more than one file matches.
        """
        matches = [f for f in self._files.values() if hash_matches(f.hash, target_hash)]
        if len(matches) != 1:
            if len(matches) > 1:
                logger.warning(f"Hash prefix '{target_hash}' is ambiguous ({len(matches)} files)")
            return None
        return matches[0]

    def resolve_path(self, target_hash):
        local = self.lookup(target_hash)
        return local.path if local else None
