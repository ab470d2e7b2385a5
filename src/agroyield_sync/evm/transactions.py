"""Transaction dispatch helpers for the AgroYield ledger client."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from ..exceptions import TransactionError
from ..utils import describe_failure
from .config import TransactionConfig

logger = logging.getLogger(__name__)

# Per-call budget handed to web3 when the overall wait is unbounded.
RECEIPT_WAIT_SLICE = 120.0


@dataclass
class PendingTransaction:
    """Handle for a submitted, not yet confirmed, ledger write."""

    action: str
    tx_hash: HexBytes
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def hash_hex(self) -> str:
        return self.tx_hash.to_0x_hex()


class TransactionDispatcher:
    """Encapsulate contract transaction submission and receipt handling."""

    def __init__(self, web3: AsyncWeb3, config: TransactionConfig | None = None) -> None:
        config = config or TransactionConfig()
        self._web3 = web3
        self._receipt_timeout = config.receipt_timeout
        self._poll_interval = config.poll_interval

    async def submit(
        self,
        contract_function: Any,
        *,
        action: str,
        sender: str,
        context: Mapping[str, Any] | None = None,
    ) -> PendingTransaction:
        logger.info("Dispatching %s from %s", action, sender)

        try:
            tx_hash = await contract_function.transact({"from": sender})
        except Exception as exc:
            reason = describe_failure(exc)
            raise TransactionError(
                f"{action} failed: {reason}",
                action=action,
                reason=reason,
                details={"context": dict(context or {}), "error": str(exc)},
            ) from exc

        pending = PendingTransaction(
            action=action, tx_hash=HexBytes(tx_hash), context=dict(context or {})
        )
        logger.info("Transaction sent for action=%s hash=%s", action, pending.hash_hex)
        return pending

    async def wait(self, pending: PendingTransaction) -> Mapping[str, Any]:
        """Wait for the receipt of ``pending`` and raise if the transaction reverted.

        Lookup failures are retried until the receipt arrives or the configured
        ``receipt_timeout`` elapses; with no timeout the wait is unbounded.
        """

        receipt = await self._await_receipt(pending)

        block_number = receipt.get("blockNumber")
        if receipt.get("status", 0) != 1:
            logger.error(
                "Transaction reverted for action=%s hash=%s block=%s",
                pending.action,
                pending.hash_hex,
                block_number,
            )
            raise TransactionError(
                f"{pending.action} reverted",
                action=pending.action,
                tx_hash=pending.hash_hex,
                reason="reverted",
                details={"block_number": block_number},
            )

        logger.info(
            "Transaction confirmed for action=%s hash=%s block=%s",
            pending.action,
            pending.hash_hex,
            block_number,
        )
        return receipt

    async def _await_receipt(self, pending: PendingTransaction) -> Mapping[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = None if self._receipt_timeout is None else loop.time() + self._receipt_timeout

        while True:
            remaining = RECEIPT_WAIT_SLICE if deadline is None else deadline - loop.time()
            if remaining <= 0:
                raise self._timed_out(pending)
            try:
                return await self._web3.eth.wait_for_transaction_receipt(
                    pending.tx_hash, timeout=remaining, poll_latency=self._poll_interval
                )
            except TimeExhausted as exc:
                if deadline is not None:
                    raise self._timed_out(pending) from exc
                logger.info(
                    "Still waiting for %s receipt hash=%s", pending.action, pending.hash_hex
                )
            except Exception as exc:
                logger.warning(
                    "Receipt lookup failed for hash=%s, retrying: %s", pending.hash_hex, exc
                )
                await asyncio.sleep(self._poll_interval)

    @staticmethod
    def _timed_out(pending: PendingTransaction) -> TransactionError:
        return TransactionError(
            f"Timed out waiting for {pending.action} confirmation",
            action=pending.action,
            tx_hash=pending.hash_hex,
            reason="timeout",
        )
