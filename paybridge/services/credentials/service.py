"""Shop install records and per-shop gateway credentials."""

from sqlalchemy import select

from paybridge.common.errors import ValidationFailed
from paybridge.common.logging import logger
from paybridge.common.shop_host import canonical_shop_host, legacy_shop_host
from paybridge.services.credentials.models import GatewaySettings, Shop
from paybridge.services.ledger.models import utcnow

MASK = "********"


def normalize_mode(value) -> str:
    return "live" if str(value or "").strip().lower() == "live" else "test"


def mask_settings(row: GatewaySettings | None) -> dict | None:
    """Browser-safe view: the merchant key is only ever a fixed mask."""

    if row is None:
        return None
    return {
        "shop": row.shop_domain,
        "merchantId": row.merchant_id,
        "merchantKey": MASK if row.merchant_key else "",
        "mode": row.mode,
        "returnUrl": row.return_url,
        "cancelUrl": row.cancel_url,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


class CredentialStore:
    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def upsert_shop(self, shop: str, access_token: str | None = None, scope: str | None = None) -> Shop:
        """Record an install; absent token/scope keep what is stored."""

        if not shop:
            raise ValidationFailed("shop is required")
        now = utcnow()
        with self.session_factory() as db:
            row = db.get(Shop, shop)
            if row is None:
                row = Shop(shop=shop, access_token=access_token, scope=scope, installed_at=now, updated_at=now)
                db.add(row)
            else:
                if access_token is not None:
                    row.access_token = access_token
                if scope is not None:
                    row.scope = scope
                row.uninstalled_at = None
                row.updated_at = now
            db.commit()
            logger.info("shop upserted shop=%s has_token=%s", shop, bool(row.access_token))
            return row

    def get_shop(self, shop: str) -> Shop | None:
        if not shop:
            return None
        with self.session_factory() as db:
            return db.get(Shop, shop)

    def list_shops(self) -> list[dict]:
        with self.session_factory() as db:
            rows = db.execute(select(Shop).order_by(Shop.updated_at.desc())).scalars()
            return [
                {
                    "shop": row.shop,
                    "scope": row.scope,
                    "hasToken": bool(row.access_token),
                    "installedAt": row.installed_at.isoformat() if row.installed_at else None,
                    "uninstalledAt": row.uninstalled_at.isoformat() if row.uninstalled_at else None,
                    "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
                }
                for row in rows
            ]

    def mark_uninstalled(self, shop: str) -> bool:
        with self.session_factory() as db:
            row = db.get(Shop, shop)
            if row is None:
                return False
            now = utcnow()
            row.access_token = None
            row.uninstalled_at = now
            row.updated_at = now
            db.commit()
        logger.info("shop uninstalled shop=%s", shop)
        return True

    def get_settings(self, shop: str | None) -> GatewaySettings | None:
        canonical = canonical_shop_host(shop)
        if canonical is None:
            return None
        with self.session_factory() as db:
            row = db.get(GatewaySettings, canonical)
            if row is None:
                row = db.get(GatewaySettings, legacy_shop_host(canonical))
            return row

    def upsert_settings(
        self,
        shop: str,
        merchant_id: str | None = None,
        merchant_key: str | None = None,
        mode: str | None = None,
        return_url: str | None = None,
        cancel_url: str | None = None,
    ) -> GatewaySettings:
        """Merge settings; the stored key changes only for a non-blank `merchant_key`."""

        canonical = canonical_shop_host(shop)
        if canonical is None:
            raise ValidationFailed("A valid shop host is required", code="INVALID_SHOP")
        new_key = merchant_key.strip() if isinstance(merchant_key, str) else None

        with self.session_factory() as db:
            row = db.get(GatewaySettings, canonical)
            if row is None:
                row = GatewaySettings(shop_domain=canonical, mode=normalize_mode(mode))
                db.add(row)
            # Omitted fields keep their stored value; an empty string clears one.
            for column, value in (("merchant_id", merchant_id), ("return_url", return_url), ("cancel_url", cancel_url)):
                if value is not None:
                    setattr(row, column, str(value).strip() or None)
            if new_key:
                row.merchant_key = new_key
            if mode is not None:
                row.mode = normalize_mode(mode)
            row.updated_at = utcnow()
            db.commit()
            logger.info("gateway settings saved shop=%s key_replaced=%s", canonical, bool(new_key))
            return row
