"""Vendor, customer and menu lookups."""
from typing import List, Optional, Sequence
from sqlalchemy import select

from campusbite.db.models import MenuItem, User, VendorProfile
from campusbite.services.persistence.base import StoreService


class CatalogPersistenceService(StoreService):
    """Read and seed the users, vendors and menu items tables."""

    async def get_user(self, user_id: str) -> Optional[User]:
        async def work() -> Optional[User]:
            return await self.db.get(User, user_id)

        return await self._run("select user", work)

    async def get_vendor(self, vendor_id: str) -> Optional[VendorProfile]:
        async def work() -> Optional[VendorProfile]:
            return await self.db.get(VendorProfile, vendor_id)

        return await self._run("select vendor", work)

    async def get_vendor_summaries(self, vendor_ids: Sequence[str]) -> List[VendorProfile]:
        """Vendors for a batch of ids in one query."""
        if not vendor_ids:
            return []

        async def work() -> List[VendorProfile]:
            result = await self.db.execute(
                select(VendorProfile).where(VendorProfile.id.in_(list(vendor_ids)))
            )
            return list(result.scalars().all())

        return await self._run("select vendor summaries", work)

    async def get_customer_summaries(self, customer_ids: Sequence[str]) -> List[User]:
        """Customers for a batch of ids in one query."""
        if not customer_ids:
            return []

        async def work() -> List[User]:
            result = await self.db.execute(select(User).where(User.id.in_(list(customer_ids))))
            return list(result.scalars().all())

        return await self._run("select customer summaries", work)

    async def get_menu_item(self, item_id: str) -> Optional[MenuItem]:
        async def work() -> Optional[MenuItem]:
            return await self.db.get(MenuItem, item_id)

        return await self._run("select menu item", work)

    async def upsert_all(self, rows: Sequence[object]) -> int:
        """Insert or update catalog rows by primary key in one commit."""

        async def work() -> int:
            for row in rows:
                await self.db.merge(row)
            await self.db.commit()
            return len(rows)

        return await self._run("upsert catalog", work)
