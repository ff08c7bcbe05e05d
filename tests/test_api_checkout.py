"""Checkout entry points: direct pay, platform payment session, app proxy."""

import time
from urllib.parse import parse_qs, urlencode, urlsplit

from paybridge.common.hosted_page import DEV_HOSTED_PAGE
from paybridge.common.signatures import canonical_query, hmac_digest


def _query(url: str) -> dict:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


def _pay_init(client, **overrides):
    body = {"orderId": "O-1", "amount": "10.00", "currency": "usd", "customer": {"id": "C1"}}
    body.update(overrides)
    return client.post("/pay/init", json=body)


def test_pay_init_returns_signed_redirect(client):
    resp = _pay_init(client)
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["paymentSessionId"].startswith("ps_")

    url = payload["redirectUrl"]
    assert url.startswith(DEV_HOSTED_PAGE)
    params = _query(url)
    assert params["id"] == "C1"
    assert params["merch"] == "1234567"
    assert params["amount"] == "10.00"
    assert params["invoice"] == "O-1"
    assert params["currency"] == "USD"
    assert params["success"] == "https://bridge.test/callbacks/complete-payment?orderId=O-1&result=success"
    assert params["fail"].endswith("result=fail")

    row = client.app.state.ctx.ledger.get("O-1")
    assert (row.status, row.amount, row.currency, row.customer_id) == ("initiated", "10.00", "USD", "C1")


def test_pay_init_accepts_minor_units(client):
    resp = _pay_init(client, amount=None, amountMinor=1299)
    assert _query(resp.json()["redirectUrl"])["amount"] == "12.99"


def test_pay_init_is_idempotent_then_conflicts(client):
    assert _pay_init(client).status_code == 200
    assert _pay_init(client).status_code == 200

    resp = _pay_init(client, amount="12.00")
    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "IDEMPOTENCY_CONFLICT"
    assert error["conflicts"] == [{"field": "amount", "existing": "10.00", "requested": "12.00"}]


def test_pay_init_validation(client):
    assert _pay_init(client, customer={}).json()["error"]["code"] == "INVALID_REQUEST"
    assert _pay_init(client, amount="ten").json()["error"]["code"] == "INVALID_AMOUNT"
    for overrides in ({"amount": "1e30"}, {"amount": None, "amountMinor": 10**40}):
        resp = _pay_init(client, **overrides)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_AMOUNT"
    resp = _pay_init(client, currency="dollars")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_CURRENCY"


def test_pay_init_without_global_credentials(make_client):
    client = make_client(rocketgate_hash_secret="")
    resp = _pay_init(client)
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "MISCONFIGURED_ENV"


SESSION_FORM = {
    "id": "pay_1",
    "shoplazza_order_id": "O-7",
    "amount": "25.5",
    "currency": "usd",
    "complete_url": "https://a.myshoplazza.com/complete",
    "callback_url": "https://a.myshoplazza.com/notify",
    "cancel_url": "https://a.myshoplazza.com/cancel",
    "test": "true",
    "shop": "a.myshoplazza.com",
}


def _post_form(client, form: dict, headers: dict | None = None):
    return client.post(
        "/payments/session",
        content=urlencode(form),
        headers={"content-type": "application/x-www-form-urlencoded", **(headers or {})},
    )


def test_payment_session_returns_url_without_redirecting(client):
    resp = _post_form(client, SESSION_FORM)
    assert resp.status_code == 200

    params = _query(resp.json()["redirect_url"])
    assert params["id"] == "pay_1"
    assert params["amount"] == "25.50"
    assert params["invoice"] == "O-7"
    success = _query(params["success"])
    assert success["orderId"] == "O-7"
    assert success["status"] == "success"
    assert success["spz_payment_id"] == "pay_1"
    assert success["spz_test"] == "true"
    assert success["shop"] == "a.myshoplazza.com"
    assert len(success["nonce"]) == 24

    ctx = client.app.state.ctx
    row = ctx.ledger.get_by_attempt("pay_1")
    assert (row.order_id, row.status, row.shop_scope) == ("O-7", "pending", "a.myshoplazza.com")
    assert ctx.audit.list(topic="payments/session")[0]["source"] == "shoplazza"


def test_payment_session_missing_fields(client):
    form = {key: value for key, value in SESSION_FORM.items() if key not in ("amount", "callback_url")}
    resp = _post_form(client, form)
    assert resp.status_code == 400
    assert resp.json()["error"] == {
        "code": "INVALID",
        "message": "Missing required fields: amount, callback_url",
    }


def test_payment_session_prefers_saved_shop_credentials(client):
    client.app.state.ctx.credentials.upsert_settings("a.myshoplazza.com", merchant_id="777", merchant_key="shop-key")
    resp = _post_form(client, SESSION_FORM)

    params = _query(resp.json()["redirect_url"])
    assert params["merch"] == "777"
    assert client.app.state.ctx.builder.verify_hash(params, "shop-key", params["hash"])


def test_payment_session_signature_enforced(make_client):
    client = make_client(verify_shoplazza_signature=True)
    raw = urlencode(SESSION_FORM).encode()
    now = str(int(time.time()))
    form_headers = {"content-type": "application/x-www-form-urlencoded"}

    unsigned = client.post("/payments/session", content=raw, headers=form_headers)
    assert unsigned.status_code == 401
    assert unsigned.json()["error"]["reason"] == "no_signature"

    signed_headers = {
        **form_headers,
        "X-Shoplazza-Signature": hmac_digest("webhook-secret", raw, "base64"),
        "X-Shoplazza-Timestamp": now,
    }
    assert client.post("/payments/session", content=raw, headers=signed_headers).status_code == 200

    stale = {**signed_headers, "X-Shoplazza-Timestamp": str(int(time.time()) - 3600)}
    resp = client.post("/payments/session", content=raw, headers=stale)
    assert resp.status_code == 401
    assert resp.json()["error"]["reason"] == "stale_timestamp"


def test_payment_capture_reports_hmac_without_rejecting(make_client):
    client = make_client(verify_shoplazza_signature=True)
    raw = b'{"id":"pay_9"}'
    resp = client.post(
        "/payments/create",
        content=raw,
        headers={"content-type": "application/json", "x-shoplazza-hmac-sha256": "bogus"},
    )
    assert resp.status_code == 200
    assert resp.json()["hmac"] == {"verified": False, "reason": "mismatch"}

    good = hmac_digest("client-secret", raw, "base64")
    resp = client.post("/payments/create", content=raw, headers={"x-shoplazza-hmac-sha256": good})
    assert resp.json()["hmac"] == {"verified": True, "reason": "match"}
    assert len(client.app.state.ctx.audit.list(topic="payments/create")) == 2


PROXY_PARAMS = {
    "orderId": "O-9",
    "amount": "5",
    "currency": "usd",
    "customerId": "C9",
    "path_prefix": "/apps/pay",
}


def _signed_proxy(params: dict, secret: str = "proxy-secret") -> dict:
    message = canonical_query(params, exclude="signature", percent_encode=True)
    return {**params, "signature": hmac_digest(secret, message, "hex")}


def test_app_proxy_redirects_to_hosted_page(client):
    resp = client.get("/app-proxy/init", params=_signed_proxy(PROXY_PARAMS), follow_redirects=False)
    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith(DEV_HOSTED_PAGE)
    params = _query(location)
    assert (params["id"], params["amount"], params["currency"]) == ("C9", "5.00", "USD")
    assert _query(params["success"])["status"] == "success"

    row = client.app.state.ctx.ledger.get("O-9")
    assert (row.status, row.customer_id) == ("pending", "C9")


def test_app_proxy_rejects_bad_signatures(client):
    missing = client.get("/app-proxy/init", params=PROXY_PARAMS, follow_redirects=False)
    assert missing.status_code == 401
    assert missing.json()["error"]["reason"] == "no_hmac"

    forged = client.get(
        "/app-proxy/init", params=_signed_proxy(PROXY_PARAMS, secret="wrong"), follow_redirects=False
    )
    assert forged.status_code == 401
    assert forged.json()["error"]["reason"] == "mismatch"


def test_app_proxy_conflicting_reinit(client):
    client.get("/app-proxy/init", params=_signed_proxy(PROXY_PARAMS), follow_redirects=False)
    resp = client.get(
        "/app-proxy/init", params=_signed_proxy({**PROXY_PARAMS, "customerId": "C10"}), follow_redirects=False
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["conflicts"][0]["field"] == "customerId"
