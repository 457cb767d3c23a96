from cryptography.hazmat.primitives import hashes

READ_BLOCK_SIZE = 64 * 1024


def checksum_bytes(data: bytes) -> str:
    digest = hashes.Hash(hashes.SHA1())
    digest.update(data)
    return digest.finalize().hex()


def file_checksum(filepath) -> str:
    """
    SHA-1 of the full file contents, as lowercase hex.
    """
    digest = hashes.Hash(hashes.SHA1())
    with open(filepath, 'rb') as f:
        for block in iter(lambda: f.read(READ_BLOCK_SIZE), b''):
            digest.update(block)
    return digest.finalize().hex()


def hash_matches(digest: str, target: str) -> bool:
    """
    True when target identifies digest. Targets may be a prefix of the
    full hex digest; comparison is case-insensitive.
    """
    target = (target or "").strip().lower()
    if not target:
        return False
    return digest.lower().startswith(target)
