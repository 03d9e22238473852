from __future__ import annotations

import hashlib
import hmac

import pytest

from kidart.app.billing.signature import compute_signature, verify_signature

SECRET = "whsec_test"
BODY = b'{"id":"evt_1","eventType":"checkout.completed","object":{}}'


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def test_compute_signature_matches_hmac_sha256():
    assert compute_signature(BODY, SECRET) == _sign(BODY)
    assert compute_signature(BODY.decode(), SECRET) == _sign(BODY)


def test_valid_signature_is_accepted():
    assert verify_signature(BODY, _sign(BODY), SECRET) is True


def test_signature_tolerates_whitespace_and_uppercase():
    signature = _sign(BODY).upper()
    assert verify_signature(BODY, f"  {signature[:32]} {signature[32:]}\n", SECRET) is True


def test_signature_is_checked_against_raw_bytes():
    reformatted = b'{"id": "evt_1", "eventType": "checkout.completed", "object": {}}'
    assert verify_signature(reformatted, _sign(BODY), SECRET) is False


def test_signature_with_wrong_secret_is_rejected():
    assert verify_signature(BODY, _sign(BODY, "other"), SECRET) is False


@pytest.mark.parametrize(
    "body, header, secret",
    [
        (b"", "a" * 64, SECRET),
        (BODY, None, SECRET),
        (BODY, "", SECRET),
        (BODY, "a" * 64, None),
        (BODY, "a" * 64, ""),
    ],
)
def test_missing_inputs_return_false(body, header, secret):
    assert verify_signature(body, header, secret) is False


@pytest.mark.parametrize("header", ["abc", "a" * 63, "a" * 65, "z" * 64, "sha256=" + "a" * 64])
def test_malformed_signatures_return_false(header):
    assert verify_signature(BODY, header, SECRET) is False
