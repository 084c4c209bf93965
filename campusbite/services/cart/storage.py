"""Cart storage backends."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campusbite.db.models import CartSnapshot as CartSnapshotRow
from campusbite.services.cart.models import CartSnapshot


class CartStorage(ABC):
    """Abstract base class for durable cart storage."""

    @abstractmethod
    async def load(self, owner_id: str) -> Optional[CartSnapshot]:
        """Load the saved cart for a user, if any."""
        pass

    @abstractmethod
    async def save(self, owner_id: str, snapshot: CartSnapshot) -> None:
        """Replace the saved cart for a user."""
        pass

    @abstractmethod
    async def delete(self, owner_id: str) -> None:
        """Remove the saved cart for a user."""
        pass


class InMemoryCartStorage(CartStorage):
    """Process-local cart storage."""

    def __init__(self):
        self._carts: Dict[str, dict] = {}

    async def load(self, owner_id: str) -> Optional[CartSnapshot]:
        payload = self._carts.get(owner_id)
        if payload is None:
            return None
        return CartSnapshot.model_validate(payload)

    async def save(self, owner_id: str, snapshot: CartSnapshot) -> None:
        self._carts[owner_id] = snapshot.model_dump(mode="json")

    async def delete(self, owner_id: str) -> None:
        self._carts.pop(owner_id, None)


class SqlCartStorage(CartStorage):
    """Cart storage in the ``cart_snapshots`` table.

    Writes happen in background tasks, so every call opens its own session
    instead of sharing a request-scoped one.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load(self, owner_id: str) -> Optional[CartSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CartSnapshotRow).where(CartSnapshotRow.owner_id == owner_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return CartSnapshot.model_validate(row.payload)

    async def save(self, owner_id: str, snapshot: CartSnapshot) -> None:
        payload = snapshot.model_dump(mode="json")
        async with self.session_factory() as session:
            row = await session.get(CartSnapshotRow, owner_id)
            if row is None:
                session.add(CartSnapshotRow(owner_id=owner_id, payload=payload))
            else:
                row.payload = payload
                row.updated_at = datetime.utcnow()
            await session.commit()

    async def delete(self, owner_id: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(CartSnapshotRow).where(CartSnapshotRow.owner_id == owner_id)
            )
            await session.commit()
