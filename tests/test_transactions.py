from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, cast

import pytest
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from agroyield_sync.evm.config import TransactionConfig
from agroyield_sync.evm.transactions import (
    RECEIPT_WAIT_SLICE,
    PendingTransaction,
    TransactionDispatcher,
)
from agroyield_sync.exceptions import TransactionError

TX_HASH = HexBytes(b"\x12" * 32)


class DummyEth:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    @property
    def lookups(self) -> int:
        return len(self.calls)

    async def wait_for_transaction_receipt(
        self, tx_hash: HexBytes, timeout: float, poll_latency: float
    ) -> Any:
        self.calls.append({"hash": tx_hash, "timeout": timeout, "poll_latency": poll_latency})
        if not self._responses:
            await asyncio.sleep(timeout)
            raise TimeExhausted(f"Transaction {tx_hash!r} is not in the chain")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class DummyFunction:
    def __init__(self, result: Any = TX_HASH) -> None:
        self._result = result
        self.calls: list[dict[str, Any]] = []

    async def transact(self, params: dict[str, Any]) -> Any:
        self.calls.append(params)
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


def _dispatcher(responses: list[Any], **config: Any) -> tuple[TransactionDispatcher, DummyEth]:
    eth = DummyEth(responses)
    web3 = cast(AsyncWeb3, SimpleNamespace(eth=eth))
    return TransactionDispatcher(web3, TransactionConfig(poll_interval=0, **config)), eth


def _pending() -> PendingTransaction:
    return PendingTransaction(action="invest", tx_hash=TX_HASH, context={"project_id": "1"})


@pytest.mark.asyncio
async def test_submit_returns_pending_handle() -> None:
    dispatcher, _ = _dispatcher([])
    function = DummyFunction()

    pending = await dispatcher.submit(
        function, action="approve", sender="0xabc", context={"units": 5}
    )

    assert function.calls == [{"from": "0xabc"}]
    assert pending.hash_hex == "0x" + "12" * 32
    assert pending.context == {"units": 5}


@pytest.mark.asyncio
async def test_submit_failure_carries_reason() -> None:
    dispatcher, _ = _dispatcher([])
    function = DummyFunction(ValueError("execution reverted: Project not active"))

    with pytest.raises(TransactionError) as exc_info:
        await dispatcher.submit(function, action="invest", sender="0xabc")

    assert exc_info.value.action == "invest"
    assert exc_info.value.tx_hash is None
    assert "Project not active" in (exc_info.value.reason or "")


@pytest.mark.asyncio
async def test_wait_returns_mined_receipt() -> None:
    receipt = {"status": 1, "blockNumber": 42}
    dispatcher, eth = _dispatcher([receipt])

    assert await dispatcher.wait(_pending()) == receipt
    assert eth.calls == [{"hash": TX_HASH, "timeout": RECEIPT_WAIT_SLICE, "poll_latency": 0}]


@pytest.mark.asyncio
async def test_unbounded_wait_continues_after_slice_expires() -> None:
    receipt = {"status": 1, "blockNumber": 42}
    dispatcher, eth = _dispatcher([TimeExhausted("slice"), TimeExhausted("slice"), receipt])

    assert await dispatcher.wait(_pending()) == receipt
    assert eth.lookups == 3


@pytest.mark.asyncio
async def test_reverted_receipt_raises() -> None:
    dispatcher, _ = _dispatcher([{"status": 0, "blockNumber": 43}])

    with pytest.raises(TransactionError) as exc_info:
        await dispatcher.wait(_pending())

    assert exc_info.value.reason == "reverted"
    assert exc_info.value.tx_hash == _pending().hash_hex
    assert exc_info.value.details == {"block_number": 43}


@pytest.mark.asyncio
async def test_unbounded_wait_survives_long_error_streaks() -> None:
    receipt = {"status": 1, "blockNumber": 44}
    errors: list[Any] = [ConnectionError("reset") for _ in range(25)]
    dispatcher, eth = _dispatcher([*errors, receipt])

    assert await dispatcher.wait(_pending()) == receipt
    assert eth.lookups == 26


@pytest.mark.asyncio
async def test_receipt_timeout() -> None:
    dispatcher, eth = _dispatcher([], receipt_timeout=0.01)

    with pytest.raises(TransactionError, match="Timed out waiting for invest") as exc_info:
        await dispatcher.wait(_pending())

    assert exc_info.value.reason == "timeout"
    assert eth.calls[0]["timeout"] <= 0.01


@pytest.mark.asyncio
async def test_lookup_errors_retried_until_deadline() -> None:
    errors: list[Any] = [ConnectionError("reset") for _ in range(3)]
    dispatcher, eth = _dispatcher(errors, receipt_timeout=0.05)

    with pytest.raises(TransactionError) as exc_info:
        await dispatcher.wait(_pending())

    assert exc_info.value.reason == "timeout"
    assert eth.lookups == 4
