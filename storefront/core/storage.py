"""
Key layout of the durable client-side state.

The storage is the signed session cookie: it lives in the shopper's browser,
survives reloads and is never synced between devices. Values are kept as JSON
strings, so anything read back may be malformed and must be parsed defensively.
"""
import json
import logging
from typing import Any, MutableMapping, Optional

logger = logging.getLogger(__name__)

CART_KEY = "cart"

CHECKOUT_ADDRESS_KEY = "checkout_address"
CHECKOUT_NOTES_KEY = "checkout_notes"
CHECKOUT_ID_KEY = "checkout_id"
CHECKOUT_REVIEWED_KEY = "checkout_reviewed"
CHECKOUT_PAYMENT_METHOD_KEY = "checkout_payment_method"

# Customer and admin sessions are deliberately kept apart
CUSTOMER_TOKEN_KEY = "customer_token"
CUSTOMER_KEY = "customer"
ADMIN_TOKEN_KEY = "token"
ADMIN_USER_KEY = "user"

VNPAY_ORDER_KEY = "vnpay_orderId"
VNPAY_FINGERPRINT_KEY = "vnpay_orderFingerprint"

CHECKOUT_KEYS = (
    CHECKOUT_ADDRESS_KEY,
    CHECKOUT_NOTES_KEY,
    CHECKOUT_ID_KEY,
    CHECKOUT_REVIEWED_KEY,
    CHECKOUT_PAYMENT_METHOD_KEY,
)

Storage = MutableMapping[str, Any]


def read_json(storage: Storage, key: str) -> Optional[Any]:
    """Return the decoded value for ``key``, or None if absent or malformed."""
    raw = storage.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error(f"Error loading '{key}' from storage: {str(e)}")
        return None


def write_json(storage: Storage, key: str, value: Any) -> None:
    try:
        storage[key] = json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError) as e:
        logger.error(f"Error saving '{key}' to storage: {str(e)}")


def remove_keys(storage: Storage, *keys: str) -> None:
    for key in keys:
        storage.pop(key, None)
