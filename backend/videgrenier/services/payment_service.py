# Overview: Mobile-money payments through the CamPay gateway.

"""
Payment Service

CamPayClient talks to the gateway over httpx and is stored per application
in app.extensions["payment_gateway"]. The module-level functions validate
input, call the client, and apply webhook notifications to sales.

GATEWAY CONTRACT:
- POST {base}/token/                  -> {"token"}        (cached for 1 hour)
- POST {base}/collect/                -> {"reference", "status", "ussd_code", "operator"}
- GET  {base}/transaction/<ref>/      -> {"reference", "status", "amount", "operator"}
- Webhook body is signed with HMAC-SHA256(secret, compact key-sorted JSON) in X-CamPay-Signature
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal

import httpx
from flask import current_app

from ..errors import AuthenticationError, UpstreamError, ValidationError
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_PENDING
from ..validation import coerce_decimal
from . import sales_service

TOKEN_TTL_SECONDS = 3600
MIN_AMOUNT_XAF = Decimal("150")
CAMEROON_PREFIX = "237"


class CamPayClient:
    def __init__(
        self,
        *,
        base_url: str,
        username: str | None,
        password: str | None,
        webhook_secret: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.username = username
        self.password = password
        self.webhook_secret = webhook_secret
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self._token: str | None = None
        self._token_expires_at = 0.0

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            try:
                body = exc.response.json()
            except ValueError:
                body = {"message": exc.response.text}
            raise UpstreamError(
                body.get("message") or "Payment gateway rejected the request",
                details={"provider": "campay", "gateway_response": body},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                "Payment gateway unreachable",
                details={"provider": "campay"},
            ) from exc

    def get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        data = self._request(
            "POST",
            "/token/",
            json={"username": self.username, "password": self.password},
        )
        self._token = data["token"]
        self._token_expires_at = time.monotonic() + TOKEN_TTL_SECONDS
        return self._token

    def _auth_headers(self) -> dict:
        return {"Authorization": f"Token {self.get_token()}"}

    def initiate_payment(
        self,
        *,
        amount: int,
        phone_number: str,
        reference: str,
        description: str | None = None,
    ) -> dict:
        data = self._request(
            "POST",
            "/collect/",
            headers=self._auth_headers(),
            json={
                "amount": str(amount),
                "currency": "XAF",
                "from": phone_number,
                "description": description or "Vide Grenier Kamer - Purchase",
                "external_reference": reference,
                "external_user": phone_number,
            },
        )
        return {
            "reference": data.get("reference"),
            "status": data.get("status"),
            "ussd_code": data.get("ussd_code"),
            "operator": data.get("operator"),
        }

    def check_status(self, reference: str) -> dict:
        data = self._request("GET", f"/transaction/{reference}/", headers=self._auth_headers())
        return {
            "reference": data.get("reference", reference),
            "status": data.get("status"),
            "amount": data.get("amount"),
            "operator": data.get("operator"),
            "external_reference": data.get("external_reference"),
        }

    def sign(self, payload: dict) -> str:
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
        return hmac.new(
            (self.webhook_secret or "").encode("utf-8"),
            body.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def verify_webhook_signature(self, payload: dict, signature: str) -> bool:
        if not self.webhook_secret:
            current_app.logger.error("CAMPAY_WEBHOOK_SECRET not configured; rejecting signed webhook")
            return False
        return hmac.compare_digest(self.sign(payload), signature)


def build_payment_gateway(config) -> CamPayClient:
    return CamPayClient(
        base_url=config["CAMPAY_BASE_URL"],
        username=config.get("CAMPAY_USERNAME"),
        password=config.get("CAMPAY_PASSWORD"),
        webhook_secret=config.get("CAMPAY_WEBHOOK_SECRET"),
        timeout=config["HTTP_TIMEOUT_SECONDS"],
    )


def get_gateway() -> CamPayClient:
    return current_app.extensions["payment_gateway"]


def initiate_mobile_payment(*, order_id: str, phone_number: str, amount) -> dict:
    """
    Start a mobile-money collection for an order.

    Raises:
        ValidationError: missing fields, non-Cameroonian number, amount below 150 XAF
        UpstreamError: gateway failure
    """
    if not order_id or not phone_number or amount in (None, ""):
        raise ValidationError("Missing required fields: order_id, phone_number, amount")

    phone_number = str(phone_number).strip()
    if not phone_number.startswith(CAMEROON_PREFIX):
        raise ValidationError("Phone number must start with 237 (Cameroon country code)")

    value = coerce_decimal("amount", amount)
    if value < MIN_AMOUNT_XAF:
        raise ValidationError("Minimum payment amount is 150 FCFA")

    result = get_gateway().initiate_payment(
        amount=int(value),
        phone_number=phone_number,
        reference=order_id,
        description=f"Vide Grenier Kamer - Order {order_id}",
    )
    current_app.logger.info("Payment initiated for %s: reference=%s", order_id, result["reference"])
    return result


def check_payment_status(reference: str) -> dict:
    if not reference:
        raise ValidationError("Payment reference is required")
    return get_gateway().check_status(reference)


def handle_webhook(payload: dict, signature: str | None) -> dict:
    """
    Apply a gateway notification.

    With a webhook secret configured the signature is required and must
    match; without one, notifications are accepted unsigned. SUCCESSFUL marks the sales
    of the referenced order completed, FAILED marks them pending.

    Returns:
        {"reference", "status", "updated_sales"}
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid webhook payload")

    gateway = get_gateway()
    if gateway.webhook_secret and not signature:
        current_app.logger.warning("Rejected CamPay webhook without signature")
        raise AuthenticationError("Missing signature", reason="MISSING_SIGNATURE")
    if signature and not gateway.verify_webhook_signature(payload, signature):
        current_app.logger.warning("Rejected CamPay webhook with invalid signature")
        raise AuthenticationError("Invalid signature", reason="INVALID_SIGNATURE")

    status = (payload.get("status") or "").upper()
    order_id = payload.get("external_reference")

    updated = 0
    if order_id and status == "SUCCESSFUL":
        updated = sales_service.mark_order_status(order_id, SALE_STATUS_COMPLETED)
    elif order_id and status == "FAILED":
        updated = sales_service.mark_order_status(order_id, SALE_STATUS_PENDING)

    current_app.logger.info(
        "CamPay webhook: reference=%s status=%s order=%s updated=%s",
        payload.get("reference"), status, order_id, updated,
    )
    return {"reference": payload.get("reference"), "status": status, "updated_sales": updated}
