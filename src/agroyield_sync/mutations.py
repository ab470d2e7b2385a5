"""Gated ledger writes with confirmation and cache invalidation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .content.pinning import PinningClient
from .evm.bindings import ContractBindingManager
from .evm.ledger import LedgerClient
from .evm.session import WalletSession
from .evm.transactions import PendingTransaction
from .exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    NetworkMismatchError,
    TransactionError,
    ValidationError,
    WalletConnectionError,
)
from .queries import QueryCache
from .registration import RegistrationCache
from .types import ProjectDraft, RegistrationForm, TransactionResult
from .utils import describe_failure, format_address, from_units, serialise_receipt, to_units

logger = logging.getLogger(__name__)


class MutationPipeline:
    """Run ledger writes one confirmed step at a time.

    Every write requires a connected session on the expected network and an
    open binding gate; otherwise it fails before touching the ledger.
    Failures are raised to the caller and never retried automatically.
    """

    def __init__(
        self,
        session: WalletSession,
        bindings: ContractBindingManager,
        queries: QueryCache,
        registration: RegistrationCache | None = None,
        pinning: PinningClient | None = None,
    ) -> None:
        self._session = session
        self._bindings = bindings
        self._queries = queries
        self._registration = registration
        self._pinning = pinning

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    async def register(self, name: str, profile_ref: str = "") -> TransactionResult:
        ledger, account = self._gate()
        if not name or not name.strip():
            raise ValidationError("Name is required", field="name", value=name)

        logger.info("Registering %s as %s", format_address(account), name)
        pending = await ledger.register(name.strip(), profile_ref)
        receipt = await self._confirm(ledger, pending)

        if self._registration is not None:
            await self._registration.refresh(account)
        return _result(pending, receipt)

    async def register_with_profile(self, form: RegistrationForm) -> TransactionResult:
        """Pin the profile document, then register with its content address."""

        self._gate()
        if self._pinning is None:
            raise ValidationError("Pinning service is not configured", field="pinning")

        document = {**form.to_profile_json(), "address": self._session.account}
        pinned = await asyncio.to_thread(self._pinning.upload_profile, document)
        logger.info("Profile document pinned at %s", pinned.cid)
        result = await self.register(form.name, pinned.cid)
        result.context["profile_ref"] = pinned.cid
        return result

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------
    async def create_project(self, draft: ProjectDraft) -> TransactionResult:
        ledger, account = self._gate()
        target_units = to_units(draft.target_amount)
        if target_units <= 0:
            raise ValidationError(
                "Target amount must be greater than zero",
                field="target_amount",
                value=draft.target_amount,
            )
        if draft.duration_days <= 0:
            raise ValidationError(
                "Duration must be at least one day",
                field="duration_days",
                value=draft.duration_days,
            )

        logger.info("Creating project %r for %s", draft.title, format_address(account))
        pending = await ledger.create_project(
            title=draft.title,
            description=draft.description,
            image_ref=draft.image_ref,
            documents_ref=draft.documents_ref,
            target_units=target_units,
            duration_days=draft.duration_days,
            location=draft.location,
            category=draft.category,
        )
        receipt = await self._confirm(ledger, pending)

        self._queries.invalidate_collection()
        result = _result(pending, receipt)
        result.project_id = ledger.project_id_from_receipt(receipt)
        logger.info("Project created with id %s", result.project_id)
        return result

    # ------------------------------------------------------------------
    # Investment
    # ------------------------------------------------------------------
    async def invest(
        self, project_id: int | str, amount: Decimal | int | float | str
    ) -> TransactionResult:
        """Invest ``amount`` in ``project_id``, approving the spend first when needed.

        Steps run strictly in order, each confirmed before the next: balance
        check, allowance check with approval, investment, cache invalidation.
        An approval that confirmed stays in place when the investment fails,
        so a retry finds enough allowance and skips re-approving.
        """

        ledger, account = self._gate()
        units = to_units(amount)
        if units <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount", value=amount)
        required = from_units(units)

        try:
            balance = await ledger.token_balance(account)
        except Exception as exc:
            raise TransactionError(
                f"Unable to read token balance: {describe_failure(exc)}",
                action="invest",
                reason=describe_failure(exc),
            ) from exc
        if balance < units:
            raise InsufficientBalanceError(
                f"Insufficient USDC balance. You have {from_units(balance)} USDC",
                required=required,
                available=from_units(balance),
            )

        spender = ledger.investment_manager_address
        try:
            allowance = await ledger.token_allowance(account, spender)
        except Exception as exc:
            raise TransactionError(
                f"Unable to read token allowance: {describe_failure(exc)}",
                action="invest",
                reason=describe_failure(exc),
            ) from exc

        approval_hash: str | None = None
        if allowance < units:
            logger.info(
                "Allowance %s below %s; approving investment manager",
                from_units(allowance),
                required,
            )
            try:
                approval = await ledger.approve(spender, units)
                await self._confirm(ledger, approval)
            except TransactionError as exc:
                raise InsufficientAllowanceError(
                    f"USDC approval failed: {exc.reason or exc.message}",
                    required=required,
                    allowance=from_units(allowance),
                    details={"tx_hash": exc.tx_hash},
                ) from exc
            approval_hash = approval.hash_hex
        else:
            logger.debug("Existing allowance covers %s; skipping approval", required)

        pending = await ledger.invest(project_id, units)
        receipt = await self._confirm(ledger, pending)

        self._queries.invalidate_project(project_id)
        self._queries.invalidate_collection()
        self._queries.invalidate_account(account)

        result = _result(pending, receipt)
        result.project_id = str(project_id)
        result.approval_tx_hash = approval_hash
        logger.info("Invested %s USDC in project %s", required, project_id)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _gate(self) -> tuple[LedgerClient, str]:
        session = self._session
        if not session.is_connected or session.account is None:
            raise WalletConnectionError("Wallet not connected")
        if not session.is_on_expected_network:
            raise NetworkMismatchError(
                f"Please switch your wallet to {session.expected_chain_id}",
                expected_chain_id=session.expected_chain_id,
                actual_chain_id=session.chain_id,
            )
        return self._bindings.require_ledger(), session.account

    async def _confirm(
        self, ledger: LedgerClient, pending: PendingTransaction
    ) -> Mapping[str, Any]:
        try:
            return await ledger.wait(pending)
        except TransactionError:
            logger.error("%s transaction %s failed", pending.action, pending.hash_hex)
            raise


def _result(pending: PendingTransaction, receipt: Mapping[str, Any]) -> TransactionResult:
    return TransactionResult(
        action=pending.action,
        tx_hash=pending.hash_hex,
        block_number=receipt.get("blockNumber"),
        receipt=serialise_receipt(receipt),
        context=dict(pending.context),
    )
