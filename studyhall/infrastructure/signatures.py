"""
HMAC helpers for EKQR webhook signatures. Razorpay signatures are checked
through its SDK.
"""

import hashlib
import hmac


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def verify_hmac_sha256(secret: str, payload: bytes, signature: str) -> bool:
    if not secret:
        return False
    return constant_time_compare(compute_hmac_sha256(secret, payload), signature or "")
