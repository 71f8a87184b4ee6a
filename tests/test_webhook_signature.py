"""Tests for webhook signature verification."""
import pytest

from payledger.services.webhook_signature import (
    build_signature_header,
    compute_signature,
    parse_signature_header,
    verify_header,
)
from payledger.utils.errors import SignatureInvalid

SECRET = "whsec_unit"
BODY = b'{"type":"payment_intent.succeeded"}'
NOW = 1_700_000_000


def test_valid_signature_returns_timestamp():
    header = build_signature_header(SECRET, BODY, NOW)

    assert verify_header(BODY, header, SECRET, now=NOW) == NOW


def test_signature_is_bound_to_exact_body():
    header = build_signature_header(SECRET, BODY, NOW)

    with pytest.raises(SignatureInvalid) as exc:
        verify_header(BODY + b" ", header, SECRET, now=NOW)
    assert exc.value.message == "Invalid signature"


@pytest.mark.parametrize("position", [0, len(BODY) // 2, len(BODY) - 1])
def test_single_bit_flip_in_body_is_rejected(position):
    header = build_signature_header(SECRET, BODY, NOW)
    tampered = bytearray(BODY)
    tampered[position] ^= 0x01

    with pytest.raises(SignatureInvalid):
        verify_header(bytes(tampered), header, SECRET, now=NOW)


def test_any_v1_candidate_may_match():
    good = compute_signature(SECRET, BODY, NOW)
    header = f"t={NOW},v1={'0' * 64},v1={good}"

    assert verify_header(BODY, header, SECRET, now=NOW) == NOW


def test_rotated_secret_is_accepted():
    header = build_signature_header("whsec_next", BODY, NOW)

    assert verify_header(BODY, header, [SECRET, "whsec_next"], now=NOW) == NOW


@pytest.mark.parametrize(
    "header, message",
    [
        (None, "The signature header was not found"),
        ("", "The signature header was not found"),
        (f"t={NOW}", "Invalid signature header"),
        ("v1=abc", "Invalid signature header"),
        ("t=yesterday,v1=abc", "Invalid signature timestamp"),
    ],
)
def test_malformed_headers_are_rejected(header, message):
    with pytest.raises(SignatureInvalid) as exc:
        verify_header(BODY, header, SECRET, now=NOW)
    assert exc.value.message == message


def test_stale_timestamp_is_rejected():
    header = build_signature_header(SECRET, BODY, NOW - 301)

    with pytest.raises(SignatureInvalid) as exc:
        verify_header(BODY, header, SECRET, tolerance=300, now=NOW)
    assert exc.value.message == "Timestamp outside the tolerance window"


def test_future_timestamp_beyond_tolerance_is_rejected():
    header = build_signature_header(SECRET, BODY, NOW + 301)

    with pytest.raises(SignatureInvalid):
        verify_header(BODY, header, SECRET, tolerance=300, now=NOW)


def test_timestamp_at_tolerance_edge_is_accepted():
    header = build_signature_header(SECRET, BODY, NOW - 300)

    assert verify_header(BODY, header, SECRET, tolerance=300, now=NOW) == NOW - 300


def test_missing_secret_rejects_everything():
    header = build_signature_header(SECRET, BODY, NOW)

    with pytest.raises(SignatureInvalid) as exc:
        verify_header(BODY, header, [None, ""], now=NOW)
    assert exc.value.message == "Webhook secret is not configured"


def test_non_ascii_signature_does_not_crash():
    header = f"t={NOW},v1=ñññ"

    with pytest.raises(SignatureInvalid):
        verify_header(BODY, header, SECRET, now=NOW)


def test_parse_signature_header_tolerates_spaces():
    timestamp, signatures = parse_signature_header(" t=123 , v1=aa , v1=bb ,x=1")

    assert timestamp == "123"
    assert signatures == ["aa", "bb"]
