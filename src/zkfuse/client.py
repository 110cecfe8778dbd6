"""
Construction of the remote tree client and the mirror that watches it.
"""
from kazoo.client import KazooClient
from kazoo.retry import KazooRetry

from zkfuse.config import Config
from zkfuse.mirror import PassthroughMirror, TreeMirror


def build_retry(config: Config) -> KazooRetry:
    """Bounded backoff for individual commands."""
    return KazooRetry(
        max_tries=config.retry_max_tries,
        delay=config.retry_delay,
        backoff=config.retry_backoff,
        max_delay=config.retry_max_delay,
    )


def build_reconnect_retry(config: Config) -> KazooRetry:
    # kazoo stops reconnecting for good once this policy gives up, which
    # would leave the mirror without events until a remount.
    return KazooRetry(
        max_tries=-1,
        delay=config.retry_delay,
        backoff=config.retry_backoff,
        max_delay=config.retry_max_delay,
    )


def build_client(config: Config) -> KazooClient:
    """Create an unstarted client; FSOperations.init starts it."""
    return KazooClient(
        hosts=config.connect_string,
        timeout=config.session_timeout,
        connection_retry=build_reconnect_retry(config),
        command_retry=build_retry(config),
    )


def build_mirror(config: Config, client: KazooClient):
    if config.mirror == "passthrough":
        return PassthroughMirror(client)
    return TreeMirror(client)
