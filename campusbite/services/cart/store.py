"""Cart store: in-session cart state with write-through persistence."""
import asyncio
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, List, Optional, Set

from campusbite.core.errors import ValidationError
from campusbite.services.cart.models import CartLine, CartSnapshot, VendorRef
from campusbite.services.cart.storage import CartStorage
from campusbite.services.money import ZERO, to_money

logger = logging.getLogger(__name__)


class CartStore:
    """Owns one user's cart.

    A cart only ever holds lines from a single vendor. Mutations are
    serialized by a lock so the vendor check and the insert happen together,
    and each mutation schedules a background write of the whole cart. Write
    failures are logged; the in-memory cart stays authoritative.
    """

    def __init__(self, owner_id: str, storage: CartStorage):
        self.owner_id = owner_id
        self.storage = storage
        self._lines: List[CartLine] = []
        self._vendor: Optional[VendorRef] = None
        self._lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._pending_writes: Set[asyncio.Task] = set()

    @property
    def lines(self) -> List[CartLine]:
        return [line.model_copy() for line in self._lines]

    @property
    def vendor(self) -> Optional[VendorRef]:
        return self._vendor

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(lines=self.lines, vendor=self._vendor)

    async def load(self) -> None:
        """Rehydrate the cart from storage."""
        try:
            saved = await self.storage.load(self.owner_id)
        except Exception as e:
            logger.error(
                f"[CART] Failed to load cart for {self.owner_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return

        async with self._lock:
            if saved is None:
                self._lines = []
                self._vendor = None
                return
            lines = [line for line in saved.lines if line.quantity > 0]
            vendor = saved.vendor
            if lines and vendor is None:
                vendor = VendorRef(id=lines[0].vendor_id, name=lines[0].vendor_name)
            # Drop lines that contradict the locked vendor
            self._lines = [line for line in lines if vendor and line.vendor_id == vendor.id]
            self._vendor = vendor if self._lines else None
        logger.info(f"[CART] Loaded cart for {self.owner_id} - {len(self._lines)} lines")

    def would_evict(self, vendor_id: str) -> bool:
        """Whether adding an item from ``vendor_id`` would empty the cart first."""
        return bool(self._lines) and self._vendor is not None and self._vendor.id != vendor_id

    async def add_item(self, line: CartLine) -> None:
        """Add a line, replacing the cart if it belongs to another vendor."""
        if line.quantity <= 0:
            raise ValidationError("Quantity must be at least 1")

        async with self._lock:
            if self._lines and self._vendor is not None and self._vendor.id != line.vendor_id:
                logger.info(
                    f"[CART] Vendor switch {self._vendor.id} -> {line.vendor_id}, "
                    f"evicting {len(self._lines)} lines"
                )
                self._lines = []

            if self._vendor is None or self._vendor.id != line.vendor_id:
                self._vendor = VendorRef(id=line.vendor_id, name=line.vendor_name)

            existing = self._find(line.item_id, line.vendor_id)
            if existing is not None:
                existing.quantity += line.quantity
            else:
                self._lines.append(line.model_copy())
            self._persist()

    async def remove_item(self, item_id: str, vendor_id: str) -> None:
        async with self._lock:
            self._remove(item_id, vendor_id)
            self._persist()

    async def update_quantity(self, item_id: str, vendor_id: str, quantity: int) -> None:
        """Set a line's quantity. Zero or less removes the line."""
        async with self._lock:
            if quantity <= 0:
                self._remove(item_id, vendor_id)
            else:
                existing = self._find(item_id, vendor_id)
                if existing is None:
                    return
                existing.quantity = quantity
            self._persist()

    async def clear(self) -> None:
        async with self._lock:
            self._clear()

    def get_total_price(self) -> Decimal:
        total = ZERO
        for line in self._lines:
            total += line.price * line.quantity
        return to_money(total)

    def get_total_items(self) -> int:
        return sum(line.quantity for line in self._lines)

    @asynccontextmanager
    async def checkout(self, clear_on_success: bool = True) -> AsyncIterator[CartSnapshot]:
        """Hold the cart still while an order is submitted.

        No mutation can run until the block exits. The cart is cleared if the
        block finishes without raising.
        """
        async with self._lock:
            yield self.snapshot()
            if clear_on_success:
                self._clear()

    async def flush(self) -> None:
        """Wait for in-flight writes to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def _find(self, item_id: str, vendor_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.item_id == item_id and line.vendor_id == vendor_id:
                return line
        return None

    def _remove(self, item_id: str, vendor_id: str) -> None:
        self._lines = [
            line for line in self._lines
            if not (line.item_id == item_id and line.vendor_id == vendor_id)
        ]
        if not self._lines:
            self._vendor = None

    def _clear(self) -> None:
        self._lines = []
        self._vendor = None
        self._persist()

    def _persist(self) -> None:
        task = asyncio.create_task(self._write_through())
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_through(self) -> None:
        # Each write stores the cart as it is now, so the last write wins
        # with the newest state regardless of scheduling order.
        async with self._write_lock:
            snapshot = self.snapshot()
            try:
                if snapshot.is_empty:
                    await self.storage.delete(self.owner_id)
                else:
                    await self.storage.save(self.owner_id, snapshot)
            except Exception as e:
                logger.error(
                    f"[CART] Failed to persist cart for {self.owner_id}: "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )
