"""
Run a relay server with a couple of custom hooks.

Needs RELAYER_PRIVATE_KEY and FORWARDER_ADDRESS in the environment (or .env).
"""

import uvicorn

from gasless_relayer.__main__ import build_app
from gasless_relayer.adapters.evm.constants import RelayerConfig
from gasless_relayer.engine.events import PaymentExecutedEvent, PaymentRejectedEvent
from gasless_relayer.utils import logger, setup_logger

config = RelayerConfig.from_env()
setup_logger(config.log_level)
app = build_app(config)


@app.hook(PaymentExecutedEvent)
async def on_executed(event, deps):
    logger.info("Relayed %s", event.result.explorer_url or event.result.tx_hash)


@app.hook(PaymentRejectedEvent)
async def on_rejected(event, deps):
    logger.warning("Rejected (%s): %s", event.result.status.value, event.result.error_message)


if __name__ == "__main__":
    uvicorn.run(app, host=config.host, port=config.port)
