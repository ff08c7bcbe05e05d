"""Buyer return and gateway notify: the two writers of payment status."""

from fastapi import APIRouter, Depends, Request

from paybridge.common.errors import ValidationFailed
from paybridge.common.logging import logger, order_id_ctx, shop_ctx
from paybridge.common.payload import first_present, query_dict, read_payload
from paybridge.context import BridgeContext, get_ctx
from paybridge.services.callbacks.service import TXN_KEYS, map_notify_status, map_return_result
from paybridge.services.ledger.schemas import PaymentState
from paybridge.services.ledger.service import INITIATED, LedgerKey

router = APIRouter(prefix="/callbacks", tags=["callbacks"])


async def _complete_payment(request: Request, ctx: BridgeContext):
    query = query_dict(request.query_params)
    if request.method == "GET":
        body = {}
    else:
        _, body = await read_payload(request)

    order_id = first_present(body, query, keys=("orderId", "invoice"))
    result = first_present(body, query, keys=("result", "status"))
    if not order_id or not result:
        raise ValidationFailed("Missing orderId or result")
    order_id_ctx.set(order_id)

    txn_id = first_present(body, query, keys=TXN_KEYS)
    payment_id = first_present(body, query, keys=("spz_payment_id",))
    shop = (first_present(body, query, keys=("shop",)) or "").lower() or None
    if shop:
        shop_ctx.set(shop)

    # The buyer can get here before the init request has been recorded.
    state = ctx.ledger.set_status(
        LedgerKey(order_id, payment_attempt_id=payment_id, shop_scope=shop),
        map_return_result(result),
        txn_id,
        source="buyer_return",
    )

    complete_notified = False
    complete_debug = None
    if shop and ctx.settings.shoplazza_client_id:
        shop_row = ctx.credentials.get_shop(shop)
        test_flag = (first_present(body, query, keys=("spz_test",)) or "").lower() == "true"
        callback_body = ctx.platform.complete_callback_body(
            payment_id or "unknown-payment",
            state.amount,
            state.currency,
            state.gateway_txn_id,
            test_flag,
        )
        complete_notified, complete_debug = await ctx.platform.notify_complete(
            shop, shop_row.access_token if shop_row else None, callback_body
        )

    logger.info("buyer return order_id=%s result=%s status=%s", order_id, result, state.status)
    return {
        "ok": True,
        "orderId": order_id,
        "state": PaymentState.model_validate(state).model_dump(mode="json"),
        "completeNotified": complete_notified,
        "completeDebug": complete_debug,
        "callbackUrl": first_present(body, query, keys=("spz_callback",)),
        "cancelUrl": first_present(body, query, keys=("spz_cancel",)),
        "shop": shop,
    }


@router.get("/complete-payment")
async def complete_payment_get(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    return await _complete_payment(request, ctx)


@router.post("/complete-payment")
async def complete_payment_post(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    return await _complete_payment(request, ctx)


@router.post("/notify")
async def gateway_notify(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Authoritative async notification; drives the final status."""

    raw, body = await read_payload(request)
    ctx.gateway_verifier.require(raw, request.headers)

    query = query_dict(request.query_params)
    order_id = first_present(body, query, keys=("invoice", "orderId", "shoplazzaOrderId"))
    status = first_present(body, query, keys=("status",))
    if not order_id or not status:
        raise ValidationFailed("Missing invoice/orderId or status")
    order_id_ctx.set(order_id)

    ctx.audit.record(
        "rocketgate",
        "notify",
        raw,
        headers=dict(request.headers),
        idempotency_key=first_present(body, query, keys=TXN_KEYS),
    )
    updated = ctx.ledger.set_status(
        LedgerKey(order_id),
        map_notify_status(status),
        first_present(body, query, keys=TXN_KEYS),
        seed_status=INITIATED,
        raw_notify=body or None,
        source="gateway_notify",
    )
    return {"ok": True, "state": PaymentState.model_validate(updated).model_dump(mode="json")}
