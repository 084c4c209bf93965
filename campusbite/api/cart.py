"""Cart API endpoints."""
import logging
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from campusbite.api.auth import require_session
from campusbite.api.errors import to_http_exception
from campusbite.core.dependencies import get_order_submission
from campusbite.core.errors import CampusBiteError
from campusbite.services.cart.models import CartLine, VendorRef
from campusbite.services.money import ZERO, format_price
from campusbite.services.ordering.models import OrderView, PaymentMethod
from campusbite.services.ordering.submission import OrderSubmissionService
from campusbite.services.session.registry import UserSession

router = APIRouter()
logger = logging.getLogger(__name__)


class CartResponse(BaseModel):
    """Cart response model."""
    lines: List[CartLine]
    vendor: Optional[VendorRef] = None
    total_items: int
    total_price: Decimal
    total_price_display: str


class QuantityUpdate(BaseModel):
    """Quantity update request model."""
    quantity: int


class CheckoutRequest(BaseModel):
    """Checkout request model."""
    payment_method: PaymentMethod = PaymentMethod.CASH
    delivery_fee: Optional[Decimal] = None
    tax_amount: Decimal = ZERO
    special_instructions: Optional[str] = None


def cart_response(session: UserSession) -> CartResponse:
    cart = session.cart
    total = cart.get_total_price()
    return CartResponse(
        lines=cart.lines,
        vendor=cart.vendor,
        total_items=cart.get_total_items(),
        total_price=total,
        total_price_display=format_price(total),
    )


@router.get("/api/cart", response_model=CartResponse)
async def get_cart(session: UserSession = Depends(require_session)):
    """Get the signed-in user's cart."""
    return cart_response(session)


@router.get("/api/cart/vendor-check")
async def check_vendor(vendor_id: str, session: UserSession = Depends(require_session)):
    """Whether adding an item from `vendor_id` would replace the current cart."""
    return {"would_replace_cart": session.cart.would_evict(vendor_id)}


@router.post("/api/cart/items", response_model=CartResponse)
async def add_cart_item(line: CartLine, session: UserSession = Depends(require_session)):
    """Add an item. Items from another vendor replace the cart."""
    logger.info(
        f"[CART API] add - user: {session.user_id}, item: {line.item_id}, "
        f"vendor: {line.vendor_id}, qty: {line.quantity}"
    )
    try:
        await session.cart.add_item(line)
    except CampusBiteError as e:
        raise to_http_exception(e)
    return cart_response(session)


@router.patch("/api/cart/items/{vendor_id}/{item_id}", response_model=CartResponse)
async def update_cart_item(
    vendor_id: str,
    item_id: str,
    update: QuantityUpdate,
    session: UserSession = Depends(require_session),
):
    """Set an item's quantity; zero removes it."""
    await session.cart.update_quantity(item_id, vendor_id, update.quantity)
    return cart_response(session)


@router.delete("/api/cart/items/{vendor_id}/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    vendor_id: str,
    item_id: str,
    session: UserSession = Depends(require_session),
):
    """Remove an item from the cart."""
    await session.cart.remove_item(item_id, vendor_id)
    return cart_response(session)


@router.delete("/api/cart", response_model=CartResponse)
async def clear_cart(session: UserSession = Depends(require_session)):
    """Empty the cart."""
    await session.cart.clear()
    return cart_response(session)


@router.post("/api/cart/checkout", response_model=OrderView, status_code=201)
async def checkout(
    checkout_req: CheckoutRequest,
    session: UserSession = Depends(require_session),
    submission: OrderSubmissionService = Depends(get_order_submission),
):
    """Place an order from the cart."""
    logger.info(f"[CART API] checkout - user: {session.user_id}")
    try:
        return await submission.submit_cart(
            session.user_id,
            session.cart,
            payment_method=checkout_req.payment_method,
            delivery_fee=checkout_req.delivery_fee,
            tax_amount=checkout_req.tax_amount,
            special_instructions=checkout_req.special_instructions,
        )
    except CampusBiteError as e:
        raise to_http_exception(e)
