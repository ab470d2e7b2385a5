"""Example: Invest USDC in a project, approving the investment manager when needed."""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal

from dotenv import load_dotenv

from agroyield_sync import (
    AgroYieldClient,
    InsufficientBalanceError,
    LocalAccountAgent,
    TransactionError,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

PROJECT_ID = os.getenv("PROJECT_ID", "1")
AMOUNT = Decimal(os.getenv("INVEST_AMOUNT", "10"))  # USDC


async def main() -> None:
    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    rpc_url = os.getenv("AMOY_RPC_URL", "https://rpc-amoy.polygon.technology")

    agent = LocalAccountAgent.from_key(private_key, rpc_url)

    async with AgroYieldClient.from_env(agent) as client:
        await client.connect()
        await client.wait_ready()

        project = await client.get_project(PROJECT_ID)
        if project is None:
            logging.error("Project %s does not exist", PROJECT_ID)
            return
        logging.info(
            "Investing %s USDC in %r (%.0f%% funded)",
            AMOUNT,
            project.title,
            project.funding_progress * 100,
        )

        try:
            result = await client.invest(PROJECT_ID, AMOUNT)
        except InsufficientBalanceError as exc:
            logging.error("%s", exc.message)
            return
        except TransactionError as exc:
            logging.error("Investment failed: %s", exc.reason or exc.message)
            return

        if result.approval_tx_hash:
            logging.info("Approval confirmed in %s", result.approval_tx_hash)
        logging.info("Investment confirmed in %s (block %s)", result.tx_hash, result.block_number)

        updated = await client.get_project(PROJECT_ID)
        if updated is not None:
            logging.info("Project now has %s USDC raised", updated.current_amount)


if __name__ == "__main__":
    asyncio.run(main())
