"""Runs the bridge: python -m discirc --token ... --guild ..."""

import logging

import trio_asyncio

from discirc.bridge import Bridge
from discirc.config import BridgeConfig


def main(argv=None):
    config = BridgeConfig.from_args(argv)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    trio_asyncio.run(Bridge(config).start)


if __name__ == "__main__":
    main()
