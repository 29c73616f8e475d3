"""
Ledger engine — the core financial business logic.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It is the only code that
writes Account.balance_cents or creates Transaction rows, and it handles:
  - Peer-to-peer transfers
  - The payment request lifecycle (create, approve, reject, cancel)
  - Administrative balance adjustments and payouts from the reserve
  - The onboarding credit granted to new accounts
  - The reserve account invariant

Atomicity:
  Every public mutation runs inside database.atomic(): the balance updates
  and the Transaction row that explains them are committed together or not
  at all. Nothing is published to the notifier until the commit succeeded.

Concurrency:
  No in-process locks are used. Two mechanisms, both enforced by the store,
  keep concurrent requests honest:

  1. Guarded debits. Money leaves an account through
         UPDATE accounts SET balance_cents = balance_cents - :amt
         WHERE id = :id AND balance_cents >= :amt
     Two concurrent debits can't both pass the predicate on a balance that
     only covers one of them; the loser matches zero rows and is reported
     as InsufficientFundsError.

  2. Conditional status transitions. A payment request only leaves
     "pending" through an UPDATE whose WHERE clause requires
     status = 'pending' and the acting party. Of two concurrent actions on
     the same request exactly one matches; the other sees zero rows and
     reports AlreadyProcessedError. Nobody retries.

  The SELECT ... FOR UPDATE reads are no-ops on SQLite but take row locks
  on PostgreSQL, so the read-then-write sequences are isolated there too.

The reserve account:
  One account row (username = reserve_username) represents the bank. It
  funds onboarding credits, admin credits and bank payouts, and collects
  admin debits. After every mutation that touches it, its balance is
  re-pinned to reserve_balance_cents so it behaves as if its funds were
  inexhaustible in both directions. ensure_reserve_invariant() does the same
  unconditionally; it runs at startup, on admin request, and optionally on
  a timer to repair out-of-band writes.
"""

import asyncio
import logging
import uuid

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bank_ledger.database import atomic
from bank_ledger.exceptions import (
    AccountNotFoundError,
    AlreadyProcessedError,
    ConflictError,
    InsufficientFundsError,
    PaymentRequestNotFoundError,
    RecipientNotFoundError,
    SelfTransferError,
    StoreError,
    ValidationError,
)
from bank_ledger.models.account import Account
from bank_ledger.models.payment_request import PaymentRequest, PaymentRequestStatus
from bank_ledger.models.transaction import Transaction, TransactionStatus, TransactionType
from bank_ledger.notifications import (
    ADMIN_TRANSACTION,
    PAYMENT_REQUEST_APPROVED,
    PAYMENT_REQUEST_CREATED,
    PAYMENT_REQUEST_REJECTED,
    TRANSFER_COMPLETED,
    WebhookNotifier,
    payment_request_payload,
    transaction_payload,
)
from bank_ledger.security import unusable_password_hash
from bank_ledger.services import account_service

logger = logging.getLogger(__name__)

ONBOARDING_DESCRIPTION = "Onboarding credit"


def _require_positive_cents(amount_cents: int) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Amount must be a positive whole number of cents")


def signed_amount_for(txn: Transaction, account_id: uuid.UUID) -> int:
    """
    The transaction's amount from one account's point of view.

    Negative when the account paid, positive when it received. Admin
    debits already store a negative amount, so the magnitude is used.
    """
    magnitude = abs(txn.amount_cents)
    return -magnitude if txn.from_account_id == account_id else magnitude


class LedgerEngine:
    """
    Executes every balance mutation in the system.

    Constructed once at startup with explicit configuration; request
    handlers pass in their own AsyncSession for each call.

    Args:
        reserve_username: Username of the reserve account row.
        reserve_balance_cents: Sentinel balance the reserve is pinned to.
        onboarding_credit_cents: Credit granted to each new account.
        notifier: Sink for post-commit events.
    """

    def __init__(
        self,
        reserve_username: str,
        reserve_balance_cents: int,
        onboarding_credit_cents: int,
        notifier: WebhookNotifier,
    ):
        self.reserve_username = reserve_username
        self.reserve_balance_cents = reserve_balance_cents
        self.onboarding_credit_cents = onboarding_credit_cents
        self.notifier = notifier

    # -----------------------------------------------------------------------
    # Reserve account
    # -----------------------------------------------------------------------

    def is_reserve(self, account: Account) -> bool:
        return account.username == self.reserve_username

    async def bootstrap(self, db: AsyncSession) -> Account:
        """
        Create the reserve account if it is missing, then pin its balance.

        Idempotent; called at process start.
        """
        async with atomic(db):
            reserve = await account_service.get_account_by_username(db, self.reserve_username)
            if reserve is None:
                reserve = await account_service.create_account(
                    db,
                    username=self.reserve_username,
                    email="reserve@bank-ledger.invalid",
                    hashed_password=unusable_password_hash(),
                    allow_reserved=True,
                )
                logger.info("Provisioned reserve account %s", reserve.account_number)
            await self._repin_reserve(db)

        await db.refresh(reserve)
        return reserve

    async def ensure_reserve_invariant(self, db: AsyncSession) -> bool:
        """
        Force the reserve balance back to the sentinel.

        Repairs any write that bypassed the per-mutation re-pin. Returns
        False (and logs) when the reserve account does not exist yet.
        """
        async with atomic(db):
            repinned = await self._repin_reserve(db)

        if not repinned:
            logger.warning("Reserve account %s not found, nothing re-pinned", self.reserve_username)
            return False
        logger.debug("Reserve balance pinned to %d cents", self.reserve_balance_cents)
        return True

    async def run_reconciliation(
        self,
        session_factory: async_sessionmaker,
        interval_seconds: float,
    ) -> None:
        """
        Re-pin the reserve every interval_seconds until cancelled.

        Started from the app lifespan when RECONCILE_INTERVAL_SECONDS > 0.
        A failing pass is logged and the loop carries on.
        """
        while True:
            await asyncio.sleep(interval_seconds)
            async with session_factory() as db:
                try:
                    await self.ensure_reserve_invariant(db)
                except StoreError:
                    logger.warning("Reserve reconciliation pass failed", exc_info=True)

    async def _get_reserve(self, db: AsyncSession) -> Account:
        result = await db.execute(
            select(Account)
            .where(Account.username == self.reserve_username)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        reserve = result.scalar_one_or_none()
        if reserve is None:
            raise StoreError("Reserve account is not provisioned")
        return reserve

    async def _repin_reserve(self, db: AsyncSession, *account_ids: uuid.UUID) -> int:
        """
        Pin the reserve balance to the sentinel.

        With account_ids, only acts if the reserve is one of them (i.e. it
        took part in the mutation being processed).
        """
        stmt = update(Account).where(Account.username == self.reserve_username)
        if account_ids:
            stmt = stmt.where(Account.id.in_(account_ids))
        result = await db.execute(
            stmt.values(balance_cents=self.reserve_balance_cents)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # -----------------------------------------------------------------------
    # Balance primitives (only ever called inside an atomic unit)
    # -----------------------------------------------------------------------

    async def _lock_account(self, db: AsyncSession, account_id: uuid.UUID) -> Account:
        """Read an account with a fresh balance, locking the row where supported."""
        result = await db.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()  # No-op on SQLite, locks row on PostgreSQL
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def _debit(self, db: AsyncSession, account: Account, amount_cents: int) -> None:
        # Guarded: matches zero rows if the balance no longer covers the amount
        result = await db.execute(
            update(Account)
            .where(Account.id == account.id)
            .where(Account.balance_cents >= amount_cents)
            .values(balance_cents=Account.balance_cents - amount_cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.refresh(account)
            raise InsufficientFundsError(
                account_id=account.id,
                requested_cents=amount_cents,
                available_cents=account.balance_cents,
            )

    async def _credit(self, db: AsyncSession, account: Account, amount_cents: int) -> None:
        await db.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(balance_cents=Account.balance_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )

    async def _move(
        self,
        db: AsyncSession,
        payer: Account,
        payee: Account,
        amount_cents: int,
        txn_type: TransactionType,
        description: str | None,
    ) -> Transaction:
        """
        Debit payer, credit payee, log the movement, re-pin the reserve.

        Shared by transfers, approvals and onboarding credits. Does not
        commit; the enclosing unit does.
        """
        await self._debit(db, payer, amount_cents)
        await self._credit(db, payee, amount_cents)

        txn = Transaction(
            from_account=payer,
            to_account=payee,
            amount_cents=amount_cents,
            type=txn_type,
            description=description,
            status=TransactionStatus.COMPLETED,
        )
        db.add(txn)
        await self._repin_reserve(db, payer.id, payee.id)
        await db.flush()

        # The UPDATEs bypassed the identity map; reload the new balances
        await db.refresh(payer)
        await db.refresh(payee)
        return txn

    # -----------------------------------------------------------------------
    # Transfers
    # -----------------------------------------------------------------------

    async def transfer(
        self,
        db: AsyncSession,
        source_account_id: uuid.UUID,
        destination: str,
        amount_cents: int,
        description: str | None = None,
    ) -> Transaction:
        """
        Move money from the source account to the destination.

        Args:
            db: Database session.
            source_account_id: The paying account (the authenticated caller).
            destination: Recipient account number or username.
            amount_cents: Positive integer amount in cents.
            description: Optional memo.

        Returns:
            The completed "transfer" Transaction, both usernames resolved.

        Raises:
            ValidationError: Non-positive amount or empty destination.
            SelfTransferError: Destination is the source account.
            InsufficientFundsError: Source balance below amount.
            RecipientNotFoundError: Destination doesn't resolve.
        """
        _require_positive_cents(amount_cents)
        if not destination or not destination.strip():
            raise ValidationError("A recipient account number or username is required")
        destination = destination.strip()

        async with atomic(db):
            source = await self._lock_account(db, source_account_id)
            recipient = await account_service.find_account(db, destination)

            # Sending to yourself is refused whatever your balance is
            if recipient is not None and recipient.id == source.id:
                raise SelfTransferError()

            if source.balance_cents < amount_cents:
                raise InsufficientFundsError(
                    account_id=source.id,
                    requested_cents=amount_cents,
                    available_cents=source.balance_cents,
                )

            if recipient is None:
                raise RecipientNotFoundError(destination)

            txn = await self._move(
                db, source, recipient, amount_cents, TransactionType.TRANSFER, description
            )

        logger.info(
            "Transfer %d: %s -> %s, %d cents",
            txn.id, source.username, recipient.username, amount_cents,
        )
        self.notifier.publish(TRANSFER_COMPLETED, transaction_payload(txn))
        return txn

    async def bank_transfer(
        self,
        db: AsyncSession,
        destination: str,
        amount_cents: int,
        description: str | None = None,
    ) -> Transaction:
        """[ADMIN ONLY] Pay out from the reserve account to a customer."""
        async with atomic(db):
            reserve = await self._get_reserve(db)
        return await self.transfer(db, reserve.id, destination, amount_cents, description)

    async def grant_onboarding_credit(self, db: AsyncSession, account: Account) -> Transaction | None:
        """
        Fund a brand-new account from the reserve as a "deposit".

        Participates in the caller's unit (signup) and does not commit, so
        the account and its funding appear together or not at all.
        """
        if self.onboarding_credit_cents <= 0:
            return None
        reserve = await self._get_reserve(db)
        return await self._move(
            db,
            reserve,
            account,
            self.onboarding_credit_cents,
            TransactionType.DEPOSIT,
            ONBOARDING_DESCRIPTION,
        )

    # -----------------------------------------------------------------------
    # Payment requests
    # -----------------------------------------------------------------------

    async def create_payment_request(
        self,
        db: AsyncSession,
        requester_id: uuid.UUID,
        target: str,
        amount_cents: int,
        reason: str,
        message: str | None = None,
    ) -> PaymentRequest:
        """
        Ask another account for money. No money moves until approval.

        Raises:
            ValidationError: Non-positive amount or blank reason.
            RecipientNotFoundError: Target doesn't resolve.
            SelfTransferError: Target is the requester.
        """
        _require_positive_cents(amount_cents)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required")
        if not target or not target.strip():
            raise ValidationError("A target account number or username is required")

        async with atomic(db):
            target_account = await account_service.resolve_account(db, target)
            if target_account.id == requester_id:
                raise SelfTransferError("Cannot request money from yourself")

            payment_request = PaymentRequest(
                from_account_id=requester_id,
                to_account_id=target_account.id,
                amount_cents=amount_cents,
                reason=reason.strip(),
                message=message,
                status=PaymentRequestStatus.PENDING,
            )
            db.add(payment_request)
            await db.flush()
            payment_request = await self.get_payment_request(db, payment_request.id)

        logger.info(
            "Payment request %d: %s asks %s for %d cents",
            payment_request.id, payment_request.from_username,
            payment_request.to_username, amount_cents,
        )
        self.notifier.publish(PAYMENT_REQUEST_CREATED, payment_request_payload(payment_request))
        return payment_request

    async def approve_payment_request(
        self,
        db: AsyncSession,
        request_id: int,
        approver_id: uuid.UUID,
    ) -> Transaction:
        """
        Pay a pending request addressed to the approver.

        The status transition and the transfer are one unit: if the
        transfer fails for any reason the request stays "pending".

        Returns:
            The "transfer" Transaction (approver -> requester).

        Raises:
            PaymentRequestNotFoundError: No such request addressed to approver.
            AlreadyProcessedError: Request is no longer pending.
            InsufficientFundsError: Approver can't cover the amount.
        """
        async with atomic(db):
            claimed = await db.execute(
                update(PaymentRequest)
                .where(PaymentRequest.id == request_id)
                .where(PaymentRequest.to_account_id == approver_id)
                .where(PaymentRequest.status == PaymentRequestStatus.PENDING)
                .values(status=PaymentRequestStatus.APPROVED)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                error = await self._missed_transition(
                    db, request_id, PaymentRequest.to_account_id == approver_id
                )
                raise error

            payment_request = await self.get_payment_request(db, request_id)
            approver = await self._lock_account(db, approver_id)
            if approver.balance_cents < payment_request.amount_cents:
                raise InsufficientFundsError(
                    account_id=approver.id,
                    requested_cents=payment_request.amount_cents,
                    available_cents=approver.balance_cents,
                )
            requester = await self._lock_account(db, payment_request.from_account_id)

            txn = await self._move(
                db,
                approver,
                requester,
                payment_request.amount_cents,
                TransactionType.TRANSFER,
                f"Payment for: {payment_request.reason}",
            )

        logger.info("Payment request %d approved by %s", request_id, approver.username)
        payload = payment_request_payload(payment_request)
        payload.update(action="approve", action_account_id=str(approver_id), transaction_id=txn.id)
        self.notifier.publish(PAYMENT_REQUEST_APPROVED, payload)
        return txn

    async def reject_payment_request(
        self,
        db: AsyncSession,
        request_id: int,
        actor_id: uuid.UUID,
    ) -> PaymentRequest:
        """Decline a pending request addressed to the actor."""
        return await self._close_payment_request(
            db,
            request_id,
            PaymentRequest.to_account_id == actor_id,
            PaymentRequestStatus.REJECTED,
            actor_id,
            action="reject",
        )

    async def cancel_payment_request(
        self,
        db: AsyncSession,
        request_id: int,
        actor_id: uuid.UUID,
    ) -> PaymentRequest:
        """Withdraw a pending request the actor made."""
        return await self._close_payment_request(
            db,
            request_id,
            PaymentRequest.from_account_id == actor_id,
            PaymentRequestStatus.CANCELLED,
            actor_id,
            action="cancel",
        )

    async def _close_payment_request(
        self,
        db: AsyncSession,
        request_id: int,
        actor_predicate,
        new_status: PaymentRequestStatus,
        actor_id: uuid.UUID,
        action: str,
    ) -> PaymentRequest:
        async with atomic(db):
            result = await db.execute(
                update(PaymentRequest)
                .where(PaymentRequest.id == request_id)
                .where(actor_predicate)
                .where(PaymentRequest.status == PaymentRequestStatus.PENDING)
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                error = await self._missed_transition(db, request_id, actor_predicate)
                raise error
            payment_request = await self.get_payment_request(db, request_id)

        logger.info("Payment request %d %s", request_id, new_status.value)
        payload = payment_request_payload(payment_request)
        payload.update(action=action, action_account_id=str(actor_id))
        # Cancellations travel on the rejection event, distinguished by "action"
        self.notifier.publish(PAYMENT_REQUEST_REJECTED, payload)
        return payment_request

    async def _missed_transition(self, db: AsyncSession, request_id: int, actor_predicate):
        """
        Explain why a conditional transition matched zero rows.

        Only classifies the error; the conditional UPDATE already decided.
        """
        result = await db.execute(
            select(PaymentRequest)
            .where(PaymentRequest.id == request_id)
            .where(actor_predicate)
            .execution_options(populate_existing=True)
        )
        payment_request = result.scalar_one_or_none()
        if payment_request is None:
            return PaymentRequestNotFoundError(request_id)
        return AlreadyProcessedError(request_id, payment_request.status.value)

    async def get_payment_request(self, db: AsyncSession, request_id: int) -> PaymentRequest:
        result = await db.execute(
            select(PaymentRequest)
            .where(PaymentRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        payment_request = result.scalar_one_or_none()
        if payment_request is None:
            raise PaymentRequestNotFoundError(request_id)
        return payment_request

    # -----------------------------------------------------------------------
    # Administrative adjustments
    # -----------------------------------------------------------------------

    async def create_admin_transaction(
        self,
        db: AsyncSession,
        target_account_id: uuid.UUID,
        signed_amount_cents: int,
        description: str,
        merchant_name: str | None = None,
    ) -> Transaction:
        """
        [ADMIN ONLY] Apply a signed delta directly to an account's balance.

        The reserve is recorded as the counterparty: it is the source of
        credits and the destination of debits.

        Raises:
            ValidationError: Zero or non-integer amount.
            AccountNotFoundError: Unknown target.
            ConflictError: Target is the reserve itself.
            InsufficientFundsError: A debit would take the balance below zero.
        """
        if (
            isinstance(signed_amount_cents, bool)
            or not isinstance(signed_amount_cents, int)
            or signed_amount_cents == 0
        ):
            raise ValidationError("Adjustment must be a non-zero whole number of cents")

        async with atomic(db):
            target = await self._lock_account(db, target_account_id)
            if self.is_reserve(target):
                raise ConflictError("The reserve account cannot be adjusted")
            reserve = await self._get_reserve(db)

            if signed_amount_cents < 0:
                await self._debit(db, target, -signed_amount_cents)
                payer, payee = target, reserve
            else:
                await self._credit(db, target, signed_amount_cents)
                payer, payee = reserve, target

            txn = Transaction(
                from_account=payer,
                to_account=payee,
                amount_cents=signed_amount_cents,
                type=TransactionType.ADMIN_ADJUSTMENT,
                description=description,
                status=TransactionStatus.COMPLETED,
            )
            db.add(txn)
            await self._repin_reserve(db, payer.id, payee.id)
            await db.flush()
            await db.refresh(target)

        action_type = "credit" if signed_amount_cents > 0 else "debit"
        logger.info(
            "Admin %s of %d cents on %s (transaction %d)",
            action_type, abs(signed_amount_cents), target.username, txn.id,
        )
        payload = transaction_payload(txn)
        payload.update(
            account_id=str(target.id),
            username=target.username,
            action_type=action_type,
            merchant_name=merchant_name,
        )
        self.notifier.publish(ADMIN_TRANSACTION, payload)
        return txn

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def get_balance(self, db: AsyncSession, account_id: uuid.UUID) -> int:
        result = await db.execute(
            select(Account.balance_cents).where(Account.id == account_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise AccountNotFoundError(account_id)
        return balance

    async def list_transactions(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
        limit: int = 50,
    ) -> list[Transaction]:
        """An account's transactions, newest first (ties broken by id)."""
        result = await db.execute(
            select(Transaction)
            .where(
                or_(
                    Transaction.from_account_id == account_id,
                    Transaction.to_account_id == account_id,
                )
            )
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_payment_requests(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
    ) -> tuple[list[PaymentRequest], list[PaymentRequest]]:
        """
        Requests involving an account.

        Returns:
            (incoming, outgoing): requests addressed to the account, and
            requests it made. Both newest first.
        """
        order = (PaymentRequest.created_at.desc(), PaymentRequest.id.desc())
        incoming = await db.execute(
            select(PaymentRequest)
            .where(PaymentRequest.to_account_id == account_id)
            .order_by(*order)
        )
        outgoing = await db.execute(
            select(PaymentRequest)
            .where(PaymentRequest.from_account_id == account_id)
            .order_by(*order)
        )
        return list(incoming.scalars().all()), list(outgoing.scalars().all())

    async def admin_list_transactions(
        self,
        db: AsyncSession,
        type_filter: TransactionType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        """[ADMIN ONLY] Every transaction in the system, newest first."""
        query = (
            select(Transaction)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        if type_filter is not None:
            query = query.where(Transaction.type == type_filter)
        result = await db.execute(query)
        return list(result.scalars().all())
