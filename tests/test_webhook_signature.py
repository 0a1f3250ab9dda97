import base64
import hashlib
import hmac

from alumni_portal.integrations.cashfree_webhooks import compute_cashfree_signature, verify_cashfree_signature

BODY = b'{"type":"PAYMENT_SUCCESS_WEBHOOK","data":{"order":{"order_id":"ord_1"}}}'


def test_signature_is_base64_hmac_of_timestamp_and_body():
    expected = base64.b64encode(hmac.new(b"secret", b"1700000000" + BODY, hashlib.sha256).digest()).decode()
    assert compute_cashfree_signature(secret="secret", raw_body=BODY, timestamp="1700000000") == expected


def test_verify_accepts_matching_signature():
    sig = compute_cashfree_signature(secret="secret", raw_body=BODY, timestamp="1700000000")
    assert verify_cashfree_signature(secret="secret", raw_body=BODY, signature=sig, timestamp="1700000000")


def test_verify_rejects_tampered_body_timestamp_or_secret():
    sig = compute_cashfree_signature(secret="secret", raw_body=BODY, timestamp="1700000000")
    assert not verify_cashfree_signature(secret="secret", raw_body=BODY + b" ", signature=sig, timestamp="1700000000")
    assert not verify_cashfree_signature(secret="secret", raw_body=BODY, signature=sig, timestamp="1700000001")
    assert not verify_cashfree_signature(secret="other", raw_body=BODY, signature=sig, timestamp="1700000000")


def test_verify_rejects_empty_secret_or_signature():
    sig = compute_cashfree_signature(secret="", raw_body=BODY)
    assert not verify_cashfree_signature(secret="", raw_body=BODY, signature=sig)
    assert not verify_cashfree_signature(secret="secret", raw_body=BODY, signature="")
