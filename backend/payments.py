import hashlib
import hmac
import logging
import os
import secrets
from typing import Optional

import razorpay

logger = logging.getLogger(__name__)

DEFAULT_FEE_PAISE = 300 * 100
CURRENCY = "INR"


class PaymentGatewayError(RuntimeError):
    pass


def _key_id() -> Optional[str]:
    return os.environ.get("RAZORPAY_KEY_ID")


def _key_secret() -> Optional[str]:
    return os.environ.get("RAZORPAY_KEY_SECRET")


def registration_fee_paise() -> int:
    try:
        return int(os.environ.get("REGISTRATION_FEE_PAISE", DEFAULT_FEE_PAISE))
    except ValueError:
        return DEFAULT_FEE_PAISE


def get_client() -> Optional[razorpay.Client]:
    key_id, key_secret = _key_id(), _key_secret()
    if not key_id or not key_secret:
        logger.error("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not configured")
        return None
    return razorpay.Client(auth=(key_id, key_secret))


def create_order(email: Optional[str], name: Optional[str]) -> dict:
    client = get_client()
    if client is None:
        raise PaymentGatewayError("Payment gateway is not configured")
    data = {
        "amount": registration_fee_paise(),
        "currency": CURRENCY,
        "receipt": f"rcpt_{secrets.token_hex(16)}",
        "notes": {"email": email or "", "name": name or ""},
    }
    try:
        return client.order.create(data=data)
    except Exception as exc:
        raise PaymentGatewayError(f"Order creation failed: {exc}") from exc


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: Optional[str] = None) -> bool:
    secret = secret if secret is not None else _key_secret()
    if not secret or not signature:
        return False
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected, str(signature))
