from dataclasses import dataclass


@dataclass(frozen=True)
class FileInfo:
    """Metadata of a published file: name, content hash and size in bytes."""
    name: str
    hash: str
    size: int
