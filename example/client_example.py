"""
Sign a payment off-chain and hand it to a running relay server.

The user never sends a transaction: the relayer pays gas and takes the fee
in FXRP. The user must have approved the forwarder for amount + fee.
"""

import asyncio
import os
import time

from eth_account import Account

from gasless_relayer.adapters.evm.signatures import parse_amount, sign_payment_request
from gasless_relayer.clients.http_client import RelayClient, RelayRequestError

USER_PRIVATE_KEY = os.environ["USER_PRIVATE_KEY"]
FORWARDER_ADDRESS = os.environ["FORWARDER_ADDRESS"]
RECIPIENT = os.environ.get("RECIPIENT", "0x70997970C51812dc3A010C7d01b50e0d17dc79C8")
CHAIN_ID = 114  # coston2
TOKEN_DECIMALS = 6


async def main():
    async with RelayClient(base_url="http://localhost:3000") as client:
        from_address = Account.from_key(USER_PRIVATE_KEY).address
        nonce = await client.get_nonce(from_address)
        fee = await client.get_fee()
        print("Relayer fee:", fee.fee_formatted)

        request = sign_payment_request(
            private_key=USER_PRIVATE_KEY,
            forwarder_address=FORWARDER_ADDRESS,
            chain_id=CHAIN_ID,
            recipient=RECIPIENT,
            amount=parse_amount("1.5", TOKEN_DECIMALS),
            fee=int(fee.fee),
            nonce=nonce,
            deadline=int(time.time()) + 1800,
        )

        try:
            receipt = await client.execute(request)
        except RelayRequestError as e:
            print(f"Relay failed [{e.kind}] -> {e.recovery}: {e.message}")
            return
        print("Transaction:", receipt.explorer_url or receipt.transaction_hash)


if __name__ == "__main__":
    asyncio.run(main())
