import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import UserNotFoundError
from .models import CoinLedgerEntry, Order, OrderStatus, User
from .schemas import CoinBalance, CoinEntryOut

logger = logging.getLogger(__name__)

FIRST_PURCHASE_REASON = "first_purchase"
FIRST_PURCHASE_COINS = 100
DAILY_BONUS_REASON = "daily_bonus"
DAILY_BONUS_COINS = 50
RECENT_TRANSACTIONS = 10

COMPLETED_STATUSES = (OrderStatus.PAID, OrderStatus.DELIVERED)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


async def is_first_purchase(session: AsyncSession, user_id: str) -> bool:
    """No paid or delivered orders yet, and the first-purchase bonus was never granted."""
    completed = await session.scalar(
        select(func.count(Order.id)).where(
            Order.user_id == user_id,
            Order.status.in_(COMPLETED_STATUSES),
        )
    )
    if completed:
        return False

    granted = await session.scalar(
        select(func.count(CoinLedgerEntry.id)).where(
            CoinLedgerEntry.user_id == user_id,
            CoinLedgerEntry.reason == FIRST_PURCHASE_REASON,
        )
    )
    return not granted


async def has_received_daily_bonus(session: AsyncSession, user_id: str, now: datetime) -> bool:
    entry_id = await session.scalar(
        select(CoinLedgerEntry.id)
        .where(
            CoinLedgerEntry.user_id == user_id,
            CoinLedgerEntry.reason == DAILY_BONUS_REASON,
            CoinLedgerEntry.created_at >= start_of_day(now),
        )
        .limit(1)
    )
    return entry_id is not None


async def evaluate_bonuses(session: AsyncSession, user_id: str, now: datetime) -> List[Tuple[str, int]]:
    """(reason, coins) pairs the user earns with a checkout happening at ``now``."""
    bonuses = []
    if await is_first_purchase(session, user_id):
        bonuses.append((FIRST_PURCHASE_REASON, FIRST_PURCHASE_COINS))
    if not await has_received_daily_bonus(session, user_id, now):
        bonuses.append((DAILY_BONUS_REASON, DAILY_BONUS_COINS))
    return bonuses


def grant_coins(session: AsyncSession, user_id: str, coins: int, reason: str,
                order_id: Optional[str] = None, created_at: Optional[datetime] = None) -> CoinLedgerEntry:
    """Append a ledger entry to the session; the caller owns the transaction."""
    entry = CoinLedgerEntry(user_id=user_id, coins=coins, reason=reason, order_id=order_id)
    if created_at is not None:
        entry.created_at = created_at
    session.add(entry)
    logger.info(f"Coins granted: user={user_id} coins={coins} reason={reason} order={order_id}")
    return entry


class CoinService:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def balance(self, user_id: str) -> CoinBalance:
        async with self.session_factory() as session:
            if await session.get(User, user_id) is None:
                raise UserNotFoundError(user_id)

            total = await session.scalar(
                select(func.coalesce(func.sum(CoinLedgerEntry.coins), 0)).where(
                    CoinLedgerEntry.user_id == user_id
                )
            )
            recent = (await session.execute(
                select(CoinLedgerEntry)
                .where(CoinLedgerEntry.user_id == user_id)
                .order_by(CoinLedgerEntry.created_at.desc(), CoinLedgerEntry.id)
                .limit(RECENT_TRANSACTIONS)
            )).scalars().all()

        return CoinBalance(
            user_id=user_id,
            balance=int(total or 0),
            transactions=[CoinEntryOut.model_validate(entry) for entry in recent],
        )
