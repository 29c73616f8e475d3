"""
Card service — deterministic virtual cards with a refresh cooldown.

Card numbers are derived, not random. Given an account number and a
generation counter, derive_card_number() always produces the same
16-digit number:

  1. The digits of the account number form a numeric seed (1234 when the
     account number has no non-zero digits)
  2. The generation is added to the seed, so each refresh yields a new number
  3. A fixed 7-digit issuer prefix is followed by 8 digits from a linear
     congruential generator seeded with that value
  4. A Luhn check digit is appended

Each account has exactly one active card. The first request for a card
issues generation 0; refreshing deactivates it and issues generation + 1,
at most once per cooldown period.

The full card number is Fernet-encrypted before storage. Only the last
four digits are kept in plaintext.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import atomic
from bank_ledger.exceptions import CardNotFoundError, ConflictError, CooldownError, StoreError
from bank_ledger.models.account import Account
from bank_ledger.models.card import Card
from bank_ledger.notifications import CARD_REFRESHED, WebhookNotifier
from bank_ledger.security import decrypt_value, encrypt_value

logger = logging.getLogger(__name__)

ISSUER_PREFIX = "4532015"
FALLBACK_SEED = 1234

# Classic LCG parameters (multiplier, increment, modulus)
_LCG_A = 9301
_LCG_C = 49297
_LCG_M = 233280


# ---------------------------------------------------------------------------
# Pure derivation
# ---------------------------------------------------------------------------

def extract_account_seed(account_number: str) -> int:
    """Numeric value of the digits in an account number, or the fallback seed."""
    digits = "".join(c for c in account_number if c.isdigit())
    value = int(digits) if digits else 0
    return value or FALLBACK_SEED


def _middle_digits(seed: int, count: int = 8) -> str:
    state = seed
    digits = []
    for _ in range(count):
        state = (state * _LCG_A + _LCG_C) % _LCG_M
        digits.append(str(state * 10 // _LCG_M))
    return "".join(digits).zfill(count)


def luhn_check_digit(partial_number: str) -> int:
    """
    Check digit that makes partial_number + digit pass the Luhn test.

    Doubling starts at the rightmost digit of the partial number, which
    becomes the second-from-right digit once the check digit is appended.
    """
    total = 0
    for position, char in enumerate(reversed(partial_number)):
        digit = int(char)
        if position % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return (10 - total % 10) % 10


def passes_luhn(card_number: str) -> bool:
    if not card_number.isdigit():
        return False
    return luhn_check_digit(card_number[:-1]) == int(card_number[-1])


def derive_card_number(account_number: str, generation: int) -> str:
    """
    Derive the card number for an account and generation.

    Pure: identical inputs always give the identical 16-digit,
    Luhn-valid number.
    """
    seed = extract_account_seed(account_number) + generation
    partial = ISSUER_PREFIX + _middle_digits(seed)
    return partial + str(luhn_check_digit(partial))


def expiry_label(issued_at: datetime) -> str:
    """MM/YY three years after issuance."""
    return f"{issued_at.month:02d}/{(issued_at.year + 3) % 100:02d}"


def mask_card_number(card_number: str) -> str:
    return "**** **** **** " + card_number[-4:]


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything here is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Card lifecycle
# ---------------------------------------------------------------------------

class CardService:
    """
    Issues and refreshes the virtual card of an account.

    Args:
        cooldown: Minimum time between two refreshes.
        notifier: Sink for the card_refreshed event.
    """

    def __init__(self, cooldown: timedelta, notifier: WebhookNotifier):
        self.cooldown = cooldown
        self.notifier = notifier

    async def _find_active_card(self, db: AsyncSession, account_id) -> Card | None:
        result = await db.execute(
            select(Card)
            .where(Card.account_id == account_id)
            .where(Card.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _new_card(self, account: Account, generation: int, now: datetime, refreshed: bool) -> Card:
        card_number = derive_card_number(account.account_number, generation)
        return Card(
            account_id=account.id,
            card_number_encrypted=encrypt_value(card_number),
            card_number_last_four=card_number[-4:],
            expiry=expiry_label(now),
            generation=generation,
            last_refresh_at=now if refreshed else None,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    async def get_active_card(self, db: AsyncSession, account: Account) -> Card:
        """
        Return the account's active card, issuing generation 0 on first use.

        Two first requests racing each other both try to insert; the
        one-active-card index rejects the second, which then reads the
        winner's card.
        """
        card = await self._find_active_card(db, account.id)
        if card is not None:
            return card

        card = self._new_card(account, 0, datetime.now(timezone.utc), refreshed=False)
        try:
            async with atomic(db):
                db.add(card)
        except StoreError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            await db.refresh(account)
            card = await self._find_active_card(db, account.id)
            if card is None:
                raise
            return card

        logger.info("Issued card ending %s to %s", card.card_number_last_four, account.username)
        return card

    def time_until_next_refresh(self, card: Card, now: datetime | None = None) -> timedelta | None:
        """Remaining cooldown, or None if the card may be refreshed now."""
        if card.last_refresh_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        remaining = _aware(card.last_refresh_at) + self.cooldown - now
        if remaining <= timedelta(0):
            return None
        return remaining

    async def refresh_card(
        self,
        db: AsyncSession,
        account: Account,
        now: datetime | None = None,
    ) -> Card:
        """
        Replace the active card with the next generation.

        Raises:
            CardNotFoundError: The account has no active card yet.
            CooldownError: The last refresh was less than the cooldown ago.
            ConflictError: A concurrent refresh replaced the card first.
        """
        now = now or datetime.now(timezone.utc)

        async with atomic(db):
            current = await self._find_active_card(db, account.id)
            if current is None:
                raise CardNotFoundError(account.id)

            remaining = self.time_until_next_refresh(current, now)
            if remaining is not None:
                raise CooldownError(remaining)

            # Only the request that still sees this card active may replace it
            result = await db.execute(
                update(Card)
                .where(Card.id == current.id)
                .where(Card.is_active.is_(True))
                .values(is_active=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError("Card was refreshed by another request")

            card = self._new_card(account, current.generation + 1, now, refreshed=True)
            db.add(card)
            await db.flush()

        logger.info(
            "Refreshed card of %s to generation %d", account.username, card.generation
        )
        self.notifier.publish(
            CARD_REFRESHED,
            {
                "account_id": str(account.id),
                "username": account.username,
                "card_number": mask_card_number(card.card_number_last_four),
                "generation": card.generation,
                "action": "refresh",
            },
        )
        return card

    @staticmethod
    def reveal_card_number(card: Card) -> str:
        return decrypt_value(card.card_number_encrypted)

