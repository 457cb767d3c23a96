import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logger(name, level=None):
    """
    Module-level logger with a single stream handler attached.
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    if not logger.hasHandlers():
        ch = logging.StreamHandler()
        formatter = logging.Formatter(LOG_FORMAT)
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    return logger


def set_log_level(level):
    """Apply a level name (e.g. "DEBUG") to every nanofiles logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    for name in ("directory", "protocol", "peer", "crypto", "config", "main"):
        logging.getLogger(name).setLevel(level)


def split_frames(data: bytes, frame_size: int):
    """
    Slice data into frames of at most frame_size bytes.
    An empty payload still yields one (empty) frame.
    """
    if frame_size <= 0:
        raise ValueError("frame_size must be positive")
    if not data:
        return [b""]
    return [data[i:i + frame_size] for i in range(0, len(data), frame_size)]


def format_size(size):
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024.0


def format_file_table(files):
    """
    Render (name, hash, size) rows as an aligned text table.
    """
    rows = [(f.name, f.hash, format_size(f.size)) for f in files]
    if not rows:
        return ""
    name_w = max(len("Name"), *(len(r[0]) for r in rows))
    hash_w = max(len("Hash"), *(len(r[1]) for r in rows))
    lines = [f"{'Name':<{name_w}}  {'Hash':<{hash_w}}  Size"]
    for name, file_hash, size in rows:
        lines.append(f"{name:<{name_w}}  {file_hash:<{hash_w}}  {size}")
    return "\n".join(lines)
