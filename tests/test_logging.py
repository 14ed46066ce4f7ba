"""
Tests for log event redaction.
"""

from studyhall.core.logging import redact_secrets


def test_secrets_are_masked():
    event = redact_secrets(
        None,
        "info",
        {"event": "razorpay_verify", "razorpay_signature": "abc123", "Token": "jwt", "booking_id": 4},
    )
    assert event == {"event": "razorpay_verify", "razorpay_signature": "***", "Token": "***", "booking_id": 4}


def test_missing_values_stay_none():
    assert redact_secrets(None, "info", {"password": None}) == {"password": None}
