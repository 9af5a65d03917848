"""
Run the relay server.

    python -m gasless_relayer

Configuration comes from the environment (or a ``.env`` file); see
``RelayerConfig.from_env``.
"""

import sys
from contextlib import asynccontextmanager
from decimal import Decimal

import uvicorn

from .adapters.evm.adapter import EVMRelayAdapter
from .adapters.evm.constants import RelayerConfig
from .engine.exceptions import BlockchainInteractionError, ConfigurationError
from .servers.apps import RelayServer
from .utils import error_context, logger, setup_logger

_UVICORN_LEVELS = {"critical", "error", "warning", "info", "debug"}


async def check_relayer_balance(relayer: EVMRelayAdapter, threshold: Decimal) -> Decimal:
    """Log the operating account's gas balance and warn when it is below ``threshold``."""
    with error_context("Relayer balance check"):
        balance = await relayer.get_relayer_balance()

    amount = Decimal(balance["balance"])
    logger.info("Relayer %s balance: %s", balance["address"], balance["balance"])
    if amount < threshold:
        logger.warning(
            "Relayer balance %s is below %s; fund %s to keep paying gas",
            balance["balance"], threshold, balance["address"],
        )
    return amount


def build_app(config: RelayerConfig) -> RelayServer:
    """Wire config -> ledger client -> relay engine -> HTTP server."""
    relayer = EVMRelayAdapter.from_config(config)

    @asynccontextmanager
    async def lifespan(app):
        chain = config.chain_config
        logger.info("Network: %s (chain id %s)", chain.name, chain.chain_id)
        logger.info("Forwarder: %s", config.forwarder_address)
        logger.info("Relayer: %s", relayer.ledger.relayer_address)
        try:
            await check_relayer_balance(relayer, config.low_balance_threshold)
        except BlockchainInteractionError:
            # logged by error_context; requests will report ledger errors themselves
            pass
        yield

    return RelayServer(relayer, lifespan=lifespan)


def main() -> int:
    try:
        config = RelayerConfig.from_env()
    except ConfigurationError as e:
        setup_logger()
        logger.error("Invalid configuration: %s", e)
        return 1

    setup_logger(config.log_level)
    app = build_app(config)

    level = config.log_level.lower()
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=level if level in _UVICORN_LEVELS else "info",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
