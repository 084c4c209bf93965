"""Unit tests for the session registry."""
import pytest
from datetime import datetime, timedelta

from campusbite.services.cart.models import CartSnapshot
from campusbite.services.session.registry import SessionRegistry
from tests.conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID, OTHER_VENDOR_ID, VENDOR_ID, make_line


class TestSessionRegistry:
    """Test session lifecycle and cart ownership."""

    @pytest.mark.asyncio
    async def test_open_and_get(self, session_registry):
        session = await session_registry.open(CUSTOMER_ID, "student")

        assert session_registry.get(session.token) is session
        assert session.cart.owner_id == CUSTOMER_ID
        assert not session.is_vendor
        assert len(session_registry) == 1

    @pytest.mark.asyncio
    async def test_unknown_token(self, session_registry):
        assert session_registry.get("nope") is None
        assert session_registry.get(None) is None

    @pytest.mark.asyncio
    async def test_sessions_share_users_cart(self, session_registry):
        """Two sign-ins for the same user see the same cart."""
        phone = await session_registry.open(CUSTOMER_ID, "student")
        laptop = await session_registry.open(CUSTOMER_ID, "student")

        await phone.cart.add_item(make_line("item-jollof"))

        assert laptop.cart is phone.cart
        assert laptop.cart.get_total_items() == 1
        await phone.cart.flush()

    @pytest.mark.asyncio
    async def test_open_rehydrates_saved_cart(self, session_registry, cart_storage):
        await cart_storage.save(
            CUSTOMER_ID, CartSnapshot(lines=[make_line("item-jollof", quantity=2)])
        )

        session = await session_registry.open(CUSTOMER_ID, "student")

        assert session.cart.get_total_items() == 2
        assert session.cart.vendor.id == VENDOR_ID

    @pytest.mark.asyncio
    async def test_close_clears_cart(self, session_registry, cart_storage):
        session = await session_registry.open(CUSTOMER_ID, "student")
        await session.cart.add_item(make_line("item-jollof"))
        await session.cart.flush()

        assert await session_registry.close(session.token)

        assert session_registry.get(session.token) is None
        assert session.cart.is_empty
        assert await cart_storage.load(CUSTOMER_ID) is None
        assert not await session_registry.close(session.token)

    @pytest.mark.asyncio
    async def test_close_all_keeps_saved_carts(self, session_registry, cart_storage):
        session = await session_registry.open(CUSTOMER_ID, "student")
        await session.cart.add_item(make_line("item-jollof"))

        await session_registry.close_all()

        assert len(session_registry) == 0
        saved = await cart_storage.load(CUSTOMER_ID)
        assert saved.lines[0].item_id == "item-jollof"

    @pytest.mark.asyncio
    async def test_expired_session_dropped_cart_kept(self, cart_storage):
        registry = SessionRegistry(cart_storage, ttl=timedelta(hours=1))
        session = await registry.open(CUSTOMER_ID, "student")
        await session.cart.add_item(make_line("item-jollof"))
        session.expires_at = datetime.utcnow() - timedelta(seconds=1)

        assert registry.get(session.token) is None

        again = await registry.open(CUSTOMER_ID, "student")
        assert again.cart.get_total_items() == 1
        await again.cart.flush()

    @pytest.mark.asyncio
    async def test_vendor_role(self, session_registry):
        session = await session_registry.open(VENDOR_ID, "vendor")
        assert session.is_vendor

    @pytest.mark.asyncio
    async def test_signing_out_one_device_keeps_shared_cart(self, session_registry, cart_storage):
        """Phone signs out while the laptop stays signed in."""
        phone = await session_registry.open(CUSTOMER_ID, "student")
        laptop = await session_registry.open(CUSTOMER_ID, "student")
        await laptop.cart.add_item(make_line("item-jollof"))

        assert await session_registry.close(phone.token)

        assert session_registry.get(laptop.token) is laptop
        assert laptop.cart.get_total_items() == 1

        tablet = await session_registry.open(CUSTOMER_ID, "student")
        assert tablet.cart is laptop.cart

        await laptop.cart.add_item(make_line("item-jollof"))
        await tablet.cart.add_item(make_line("item-waakye", vendor_id=OTHER_VENDOR_ID, price="8.00"))
        await tablet.cart.flush()

        assert laptop.cart.vendor.id == OTHER_VENDOR_ID
        saved = await cart_storage.load(CUSTOMER_ID)
        assert [line.item_id for line in saved.lines] == ["item-waakye"]

    @pytest.mark.asyncio
    async def test_last_sign_out_clears_shared_cart(self, session_registry, cart_storage):
        phone = await session_registry.open(CUSTOMER_ID, "student")
        laptop = await session_registry.open(CUSTOMER_ID, "student")
        await phone.cart.add_item(make_line("item-jollof"))

        await session_registry.close(phone.token)
        await session_registry.close(laptop.token)

        assert laptop.cart.is_empty
        assert await cart_storage.load(CUSTOMER_ID) is None
        assert len(session_registry) == 0

    @pytest.mark.asyncio
    async def test_open_sweeps_expired_sessions(self, cart_storage):
        """Expired sessions of other users do not pile up."""
        registry = SessionRegistry(cart_storage, ttl=timedelta(hours=1))
        stale = await registry.open(CUSTOMER_ID, "student")
        await stale.cart.add_item(make_line("item-jollof", quantity=2))
        stale.expires_at = datetime.utcnow() - timedelta(seconds=1)

        await registry.open(OTHER_CUSTOMER_ID, "student")

        assert len(registry) == 1
        assert CUSTOMER_ID not in registry._carts
        saved = await cart_storage.load(CUSTOMER_ID)
        assert saved.lines[0].quantity == 2

    @pytest.mark.asyncio
    async def test_sweep_keeps_live_sessions(self, session_registry):
        session = await session_registry.open(CUSTOMER_ID, "student")

        assert await session_registry.sweep_expired() == 0
        assert session_registry.get(session.token) is session

    @pytest.mark.asyncio
    async def test_close_all_flushes_carts_of_expired_sessions(self, cart_storage):
        registry = SessionRegistry(cart_storage, ttl=timedelta(hours=1))
        session = await registry.open(CUSTOMER_ID, "student")
        await session.cart.add_item(make_line("item-jollof"))
        session.expires_at = datetime.utcnow() - timedelta(seconds=1)
        assert registry.get(session.token) is None

        await registry.close_all()

        saved = await cart_storage.load(CUSTOMER_ID)
        assert saved.lines[0].item_id == "item-jollof"
