"""
Tests for Ghost webhook signature verification.
"""

import hashlib
import hmac

import pytest

from conftest import sign_ghost
from src.webhooks.signature import (
    compute_ghost_signature,
    is_timestamp_fresh,
    parse_signature_header,
    verify_ghost_signature,
)

SECRET = "s3cret"
BODY = b'{"post":{"current":{"status":"published"}}}'


class TestParseSignatureHeader:
    def test_parses_hash_and_timestamp(self):
        signed = parse_signature_header("sha256=abc123, t=1700000000000", BODY)
        assert signed.hash == "abc123"
        assert signed.timestamp == "1700000000000"
        assert signed.body == BODY

    def test_tolerates_missing_space_and_unknown_keys(self):
        signed = parse_signature_header("v=1,sha256=ff,t=5")
        assert signed.hash == "ff"
        assert signed.timestamp == "5"

    @pytest.mark.parametrize("header", [None, "", "sha256=abc", "t=123", "garbage"])
    def test_incomplete_header_returns_none(self, header):
        assert parse_signature_header(header) is None


class TestVerifyGhostSignature:
    def test_valid_signature_verifies(self):
        header = sign_ghost(BODY, SECRET, "1700000000000")
        assert verify_ghost_signature(BODY, header, SECRET) is True

    def test_str_body_is_encoded_as_utf8(self):
        header = sign_ghost(BODY, SECRET, "1700000000")
        assert verify_ghost_signature(BODY.decode(), header, SECRET) is True

    def test_digest_covers_body_then_timestamp(self):
        expected = hmac.new(SECRET.encode(), BODY + b"1700000000", hashlib.sha256).hexdigest()
        assert compute_ghost_signature(BODY, "1700000000", SECRET) == expected

    def test_single_mutated_body_byte_fails(self):
        header = sign_ghost(BODY, SECRET, "1700000000000")
        mutated = bytearray(BODY)
        mutated[10] ^= 0x01
        assert verify_ghost_signature(bytes(mutated), header, SECRET) is False

    def test_changed_timestamp_fails(self):
        header = sign_ghost(BODY, SECRET, "1700000000000")
        tampered = header.replace("t=1700000000000", "t=1700000000001")
        assert verify_ghost_signature(BODY, tampered, SECRET) is False

    def test_wrong_secret_fails(self):
        header = sign_ghost(BODY, "other", "1700000000")
        assert verify_ghost_signature(BODY, header, SECRET) is False

    def test_none_header_fails(self):
        assert verify_ghost_signature(BODY, None, SECRET) is False

    @pytest.mark.parametrize("secret", [None, ""])
    def test_empty_secret_fails(self, secret):
        header = sign_ghost(BODY, "anything", "1700000000")
        assert verify_ghost_signature(BODY, header, secret) is False

    def test_non_hex_hash_fails(self):
        assert verify_ghost_signature(BODY, "sha256=zzzz, t=1700000000", SECRET) is False

    def test_short_hash_fails_without_raising(self):
        assert verify_ghost_signature("{}", "sha256=deadbeef,t=1000000000", "x") is False


class TestTimestampTolerance:
    def test_zero_tolerance_disables_check(self):
        assert is_timestamp_fresh("1", 0, now=1_700_000_000) is True

    def test_seconds_within_window(self):
        assert is_timestamp_fresh("1700000000", 300, now=1_700_000_100) is True

    def test_milliseconds_within_window(self):
        assert is_timestamp_fresh("1700000000000", 300, now=1_700_000_100) is True

    def test_stale_timestamp_rejected(self):
        assert is_timestamp_fresh("1700000000", 300, now=1_700_001_000) is False

    def test_non_numeric_timestamp_rejected(self):
        assert is_timestamp_fresh("yesterday", 300, now=1_700_000_000) is False

    def test_stale_but_correct_signature_fails_when_tolerance_set(self):
        header = sign_ghost(BODY, SECRET, "1700000000")
        assert verify_ghost_signature(
            BODY, header, SECRET, tolerance_seconds=300, now=1_700_001_000
        ) is False
        assert verify_ghost_signature(
            BODY, header, SECRET, tolerance_seconds=300, now=1_700_000_010
        ) is True
