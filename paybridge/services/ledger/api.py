"""Read access to ledger rows."""

from fastapi import APIRouter, Depends

from paybridge.common.errors import NotFound
from paybridge.context import BridgeContext, get_ctx
from paybridge.services.ledger.schemas import PaymentState

router = APIRouter(tags=["ledger"])


@router.get("/payments/{order_id}", response_model=PaymentState)
def get_payment(order_id: str, attempt: str | None = None, ctx: BridgeContext = Depends(get_ctx)):
    """Current ledger state for one order (optionally one payment attempt)."""

    payment = ctx.ledger.get(order_id, payment_attempt_id=attempt)
    if payment is None:
        raise NotFound(f"No payment recorded for order {order_id}")
    return PaymentState.model_validate(payment)
