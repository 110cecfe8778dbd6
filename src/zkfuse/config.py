"""
Startup configuration for the ZooKeeper filesystem.
"""
from typing import Optional

from serde import SerdeError, from_dict, serde
from serde.json import from_json

from zkfuse.errors import ConfigurationError

MIRROR_KINDS = ("tree", "passthrough")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@serde
class Config:
    connect_string: str
    mountpoint: str
    mirror: str = "tree"
    connect_timeout: float = 15.0
    session_timeout: float = 10.0
    prime_timeout: Optional[float] = None
    sync_timeout: float = 2.0
    retry_max_tries: int = 5
    retry_delay: float = 1.0
    retry_backoff: int = 2
    retry_max_delay: float = 60.0
    max_payload_size: int = 1024 * 1024
    foreground: bool = True
    allow_other: bool = False
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "detailed"

    def validate(self) -> "Config":
        if not self.connect_string:
            raise ConfigurationError(message="connect string is required")
        if not self.mountpoint:
            raise ConfigurationError(message="mount point is required")
        if self.mirror not in MIRROR_KINDS:
            raise ConfigurationError(message=f"mirror must be one of {', '.join(MIRROR_KINDS)}, not {self.mirror!r}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(message=f"unknown log level {self.log_level!r}")
        if self.retry_max_tries < 0:
            raise ConfigurationError(message="retry_max_tries must not be negative")
        if self.max_payload_size <= 0:
            raise ConfigurationError(message="max_payload_size must be positive")
        return self


def load_config(path: Optional[str], connect_string: str, mountpoint: str, **overrides) -> Config:
    """
    Build the configuration from an optional JSON file and the command line.

    The connect string and mount point always come from the command line;
    other command-line overrides win over the file when they are not None.
    """
    data: dict = {}
    if path is not None:
        try:
            with open(path, "r") as f:
                data = from_json(dict, f.read())
        except OSError as e:
            raise ConfigurationError(message=f"cannot read config file {path}: {e}") from e
        except (SerdeError, ValueError) as e:
            raise ConfigurationError(message=f"invalid config file {path}: {e}") from e
    data.update({k: v for k, v in overrides.items() if v is not None})
    data["connect_string"] = connect_string
    data["mountpoint"] = mountpoint
    try:
        config = from_dict(Config, data)
    except (SerdeError, TypeError, ValueError) as e:
        raise ConfigurationError(message=f"invalid configuration: {e}") from e
    return config.validate()
