import os

import yaml

from protocol.errors import ConfigError

DEFAULTS = {
    "peer_name": "",
    "directory_host": "localhost",
    "directory_port": 6868,
    "listen_port": 10000,
    "shared_dir": "nf-shared",
    "download_dir": "nf-shared",
    "timeout_ms": 1000,
    "max_attempts": 5,
    "discard_probability": 0.0,
    "advertise": False,
    "discovery_timeout": 2.0,
    "accept_timeout": 1.0,
    "log_level": "INFO",
}


def load_config(path="config.yaml"):
    """
    Read the YAML configuration at path on top of DEFAULTS. A missing file
    yields the defaults.
    """
    config = dict(DEFAULTS)
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path} must contain a mapping, got {type(loaded).__name__}")
        config.update(loaded)
    validate(config)
    return config


def validate(config):
    for key in ("directory_port", "listen_port"):
        port = config[key]
        if not isinstance(port, int) or isinstance(port, bool) or not 0 <= port <= 65535:
            raise ConfigError(f"{key} must be a port number, got {port!r}")
    p = config["discard_probability"]
    if not isinstance(p, (int, float)) or not 0.0 <= p < 1.0:
        raise ConfigError(f"discard_probability must be in [0, 1), got {p!r}")
    if not isinstance(config["max_attempts"], int) or config["max_attempts"] < 1:
        raise ConfigError(f"max_attempts must be at least 1, got {config['max_attempts']!r}")
    if not isinstance(config["timeout_ms"], (int, float)) or config["timeout_ms"] <= 0:
        raise ConfigError(f"timeout_ms must be positive, got {config['timeout_ms']!r}")
    if config["directory_host"] is None:
        config["directory_host"] = ""
    return config
