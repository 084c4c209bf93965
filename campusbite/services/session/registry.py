"""Signed-in user sessions.

A ``UserSession`` owns everything that lives for the length of one sign-in,
most importantly the user's cart. Sessions are created at sign-in and torn
down at sign-out; the registry that holds them is created by the application
and passed in, never imported as a global.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from campusbite.services.cart.storage import CartStorage
from campusbite.services.cart.store import CartStore

logger = logging.getLogger(__name__)


class UserSession:
    """One signed-in user."""

    def __init__(
        self,
        token: str,
        user_id: str,
        role: str,
        cart: CartStore,
        expires_at: datetime,
    ):
        self.token = token
        self.user_id = user_id
        self.role = role
        self.cart = cart
        self.created_at = datetime.utcnow()
        self.expires_at = expires_at

    @property
    def is_vendor(self) -> bool:
        return self.role == "vendor"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at

    async def close(self) -> None:
        """Tear down: empty the cart and wait for the write to land."""
        await self.cart.clear()
        await self.cart.flush()


class SessionRegistry:
    """Token to session map.

    A user's concurrent sessions share one ``CartStore``. The cart stays in
    memory while any live session of that user references it; once none does,
    its pending writes are flushed and it is released (the stored copy is
    rehydrated at the next sign-in).
    """

    def __init__(self, cart_storage: CartStorage, ttl: timedelta = timedelta(hours=24)):
        self.cart_storage = cart_storage
        self.ttl = ttl
        self._sessions: Dict[str, UserSession] = {}
        self._carts: Dict[str, CartStore] = {}

    async def open(self, user_id: str, role: str) -> UserSession:
        """Create a session and rehydrate the user's saved cart."""
        await self.sweep_expired()
        token = secrets.token_urlsafe(32)
        cart = self._carts.get(user_id)
        if cart is None:
            cart = CartStore(owner_id=user_id, storage=self.cart_storage)
            await cart.load()
            self._carts[user_id] = cart
        session = UserSession(
            token=token,
            user_id=user_id,
            role=role,
            cart=cart,
            expires_at=datetime.utcnow() + self.ttl,
        )
        self._sessions[token] = session
        logger.info(f"[SESSION] Opened session for {user_id} ({role})")
        return session

    def get(self, token: Optional[str]) -> Optional[UserSession]:
        """Look up a live session. Expired sessions are dropped (cart kept)."""
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        if session.is_expired():
            del self._sessions[token]
            logger.info(f"[SESSION] Session for {session.user_id} expired")
            return None
        return session

    async def close(self, token: Optional[str]) -> bool:
        """Sign out. Returns whether a session was closed.

        The cart is emptied only when this was the user's last live session;
        otherwise the other devices keep using it.
        """
        session = self._sessions.pop(token, None) if token else None
        if session is None:
            return False

        remaining = self._live_sessions_of(session.user_id)
        if remaining:
            logger.info(
                f"[SESSION] Closed session for {session.user_id}, "
                f"cart kept for {len(remaining)} other session(s)"
            )
            return True

        await session.close()
        self._carts.pop(session.user_id, None)
        logger.info(f"[SESSION] Closed session for {session.user_id}")
        return True

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Drop expired sessions and release carts no session uses.

        Returns the number of sessions dropped.
        """
        now = now or datetime.utcnow()
        expired = [token for token, session in self._sessions.items() if session.is_expired(now)]
        for token in expired:
            session = self._sessions.pop(token)
            logger.info(f"[SESSION] Session for {session.user_id} expired")

        in_use = {session.user_id for session in self._sessions.values()}
        for user_id in [user_id for user_id in self._carts if user_id not in in_use]:
            cart = self._carts.pop(user_id)
            await cart.flush()
        return len(expired)

    async def close_all(self) -> None:
        """Flush pending cart writes at shutdown without clearing carts."""
        for cart in list(self._carts.values()):
            await cart.flush()
        self._sessions.clear()
        self._carts.clear()

    def _live_sessions_of(self, user_id: str) -> List[UserSession]:
        return [
            session
            for session in self._sessions.values()
            if session.user_id == user_id and not session.is_expired()
        ]

    def __len__(self) -> int:
        return len(self._sessions)
