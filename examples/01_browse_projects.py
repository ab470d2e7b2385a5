"""Example: Connect a local wallet, check registration and browse funding projects."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from agroyield_sync import AgroYieldClient, LocalAccountAgent

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


async def main() -> None:
    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    rpc_url = os.getenv("AMOY_RPC_URL", "https://rpc-amoy.polygon.technology")

    agent = LocalAccountAgent.from_key(private_key, rpc_url)

    async with AgroYieldClient.from_env(agent) as client:
        account = await client.connect()
        await client.wait_ready()
        logging.info("Connected as %s", account)

        profile = await client.check_registration()
        if profile is None:
            logging.info("Account is not registered yet")
        else:
            logging.info("Registered %s %s from %s", profile.role, profile.name, profile.location)

        stats = await client.get_platform_stats()
        if stats is not None:
            logging.info(
                "Platform: %d projects, %d users, %s USDC raised",
                stats.total_projects,
                stats.total_users,
                stats.total_funding,
            )

        for project in await client.get_all_projects():
            image = client.project_image(project)
            url = await image.refresh()
            logging.info(
                "#%s %s (%s): %s / %s USDC, image %s",
                project.id,
                project.title,
                project.category,
                project.current_amount,
                project.target_amount,
                url,
            )
            image.close()

        balance = await client.get_token_balance()
        logging.info("USDC balance: %s", balance)


if __name__ == "__main__":
    asyncio.run(main())
