"""
Main entry point for the ZooKeeper filesystem.
"""
import argparse
import logging
import sys
from typing import List, Optional

from zkfuse.client import build_client, build_mirror
from zkfuse.config import LOG_LEVELS, MIRROR_KINDS, Config, load_config
from zkfuse.errors import ConfigurationError, PrimingError
from zkfuse.filesystem import FSOperations
from zkfuse.log_config import setup_logging

logger = logging.getLogger("zkfuse")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="zkfuse", description="Mount a ZooKeeper tree as a filesystem.")
    parser.add_argument("connect_string", help="ZooKeeper hosts, e.g. zk1:2181,zk2:2181/chroot")
    parser.add_argument("mountpoint", help="directory to mount the tree at")
    parser.add_argument("--config", help="JSON file with further settings")
    parser.add_argument("--mirror", choices=MIRROR_KINDS, default=None,
                        help="serve reads from a watched mirror or straight from ZooKeeper")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None)
    parser.add_argument("--debug", action="store_true", default=None, help="enable FUSE debug output")
    parser.add_argument("--background", dest="foreground", action="store_false", default=None,
                        help="daemonize after mounting")
    parser.add_argument("--allow-other", action="store_true", default=None)
    return parser.parse_args(argv)


def build_filesystem(config: Config) -> FSOperations:
    client = build_client(config)
    return FSOperations(
        client,
        build_mirror(config, client),
        connect_timeout=config.connect_timeout,
        prime_timeout=config.prime_timeout,
        sync_timeout=config.sync_timeout,
        max_payload_size=config.max_payload_size,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(
            args.config,
            args.connect_string,
            args.mountpoint,
            mirror=args.mirror,
            log_level=args.log_level,
            debug=args.debug,
            foreground=args.foreground,
            allow_other=args.allow_other,
        )
    except ConfigurationError as e:
        print(f"zkfuse: {e}", file=sys.stderr)
        return 2
    setup_logging(config.log_level, config.log_format)

    fs = build_filesystem(config)
    # Prime before mounting so a failure never leaves a half-working mount.
    # A daemonized mount forks before FUSE calls init, and kazoo threads do
    # not survive the fork, so there priming is left to FuseInterface.init.
    if config.foreground:
        try:
            fs.init()
        except PrimingError as e:
            logger.critical("Cannot mount %s: %s", config.connect_string, e)
            return 1

    # Imported late: loading fusepy requires libfuse on the host.
    from zkfuse.filesystem.fuse_interface import mount

    logger.info("Mounting %s at %s", config.connect_string, config.mountpoint)
    try:
        mount(
            fs,
            config.mountpoint,
            foreground=config.foreground,
            allow_other=config.allow_other,
            debug=config.debug,
        )
    finally:
        fs.destroy()
    return 0


if __name__ == "__main__":
    sys.exit(main())
