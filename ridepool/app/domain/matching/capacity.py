"""
Seat capacity allocation for offers.

Every change to ``Offer.available_seats`` goes through a single
conditional UPDATE (compare-and-swap on the column), so the seat count
can never go negative or above ``total_seats`` even across processes.
Within one process the engine additionally serializes accept/cancel per
offer with ``offer_locks``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.models.offer import Offer

logger = logging.getLogger(__name__)


class OfferLockRegistry:
    """
    Per-offer asyncio locks.

    Locks are dropped once nobody holds or waits on them, so the registry
    does not grow with the number of offers ever touched.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, offer_id: int):
        lock = self._locks.setdefault(offer_id, asyncio.Lock())
        self._users[offer_id] = self._users.get(offer_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[offer_id] -= 1
            if self._users[offer_id] == 0:
                del self._users[offer_id]
                self._locks.pop(offer_id, None)

    def __len__(self):
        return len(self._locks)


offer_locks = OfferLockRegistry()


class CapacityAllocator:
    """Atomic seat reservation and release against a single offer row."""

    @staticmethod
    async def try_reserve(db: AsyncSession, offer_id: int, count: int) -> bool:
        """
        Take ``count`` seats if that many are still available.

        Args:
            db: Database session (caller owns the transaction)
            offer_id: Offer to reserve on
            count: Seats to take, at least 1

        Returns:
            True if the seats were reserved, False if capacity was insufficient
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        result = await db.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.available_seats >= count)
            .values(available_seats=Offer.available_seats - count)
            .execution_options(synchronize_session=False)
        )
        reserved = result.rowcount == 1
        if not reserved:
            logger.info("Seat reservation refused", extra={"offer_id": offer_id, "count": count})
        return reserved

    @staticmethod
    async def release(db: AsyncSession, offer_id: int, count: int) -> bool:
        """
        Give ``count`` seats back, never exceeding ``total_seats``.

        Returns:
            True if the seats were released, False if that would overflow the offer
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        result = await db.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.available_seats + count <= Offer.total_seats)
            .values(available_seats=Offer.available_seats + count)
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount == 1
        if not released:
            logger.warning("Seat release refused", extra={"offer_id": offer_id, "count": count})
        return released

    @staticmethod
    async def resize(db: AsyncSession, offer_id: int, new_total: int, confirmed_seats: int) -> bool:
        """
        Change ``total_seats`` while keeping ``available = total - confirmed``.

        Returns:
            False if the new total is below the seats already confirmed
        """
        if new_total < max(1, confirmed_seats):
            return False

        result = await db.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.total_seats - Offer.available_seats == confirmed_seats)
            .values(total_seats=new_total, available_seats=new_total - confirmed_seats)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


capacity_allocator = CapacityAllocator()
