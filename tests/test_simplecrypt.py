#!/usr/bin/env python3
"""
Unit tests for the stream cipher codec

Tests key table construction, fixed vectors, framing and feedback behaviour.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from rs.config import APP_KEY
from rs.simplecrypt import KEY_SLOTS, decode, encode, parse_key


# ============================================================================
# Test Constants
# ============================================================================

APP_KEY_TABLE = (0x23, 0xF0, 0xB9, 0xAC, 0xB4, 0x1B, 0x2F, 0x0C)

# Blob with header 03 01, lead 5a and prefix 00 0a around b'dev-42'
FRAMED_VECTOR = bytes.fromhex('0301' '79893af2234e4c7465')

# Blob with all-zero framing around b'ab'
ZERO_FRAMED_VECTOR = bytes.fromhex('0000' '23d36aa771')


# ============================================================================
# Test Cases: Key Table
# ============================================================================

class TestParseKey:
    """Test keystream table construction."""

    def test_application_key_is_reversed(self):
        assert parse_key(APP_KEY) == APP_KEY_TABLE

    def test_uppercase_hex(self):
        assert parse_key(APP_KEY.upper()) == APP_KEY_TABLE

    def test_short_key_zero_fills_trailing_slots(self):
        """Hyphen-stripped device id prefixes are 14 characters long."""
        table = parse_key('a1b2c3d4e5f647')
        assert table == (0x47, 0xF6, 0xE5, 0xD4, 0xC3, 0xB2, 0xA1, 0x00)
        assert len(table) == KEY_SLOTS

    def test_rejects_odd_length(self):
        with pytest.raises(ValueError, match="even number"):
            parse_key('abc')

    def test_rejects_long_key(self):
        with pytest.raises(ValueError, match="at most 16"):
            parse_key('00' * 9)

    def test_rejects_non_hex(self):
        with pytest.raises(ValueError, match="must be hex"):
            parse_key('0c2f1bb4acb9f0zz')

    def test_rejects_sign_and_whitespace(self):
        with pytest.raises(ValueError):
            parse_key('+1 2')

    def test_table_is_immutable(self):
        assert isinstance(parse_key(APP_KEY), tuple)


# ============================================================================
# Test Cases: Fixed Vectors
# ============================================================================

class TestVectors:
    """Decode fixed blobs keyed with the application key."""

    def test_decode_framed_vector(self):
        assert decode(APP_KEY, FRAMED_VECTOR) == b'dev-42'

    def test_decode_zero_framed_vector(self):
        assert decode(APP_KEY, ZERO_FRAMED_VECTOR) == b'ab'

    def test_encode_reproduces_framed_vector(self):
        blob = encode(APP_KEY, b'dev-42', header=b'\x03\x01', lead=b'\x5a', prefix=b'\x00\x0a')
        assert blob == FRAMED_VECTOR

    def test_encode_reproduces_zero_framed_vector(self):
        assert encode(APP_KEY, b'ab') == ZERO_FRAMED_VECTOR

    def test_decode_accepts_binary_string(self):
        assert decode(APP_KEY, FRAMED_VECTOR.decode('latin-1')) == b'dev-42'

    def test_decode_accepts_key_table(self):
        assert decode(APP_KEY_TABLE, FRAMED_VECTOR) == b'dev-42'


# ============================================================================
# Test Cases: Framing and Feedback
# ============================================================================

class TestFraming:
    """Framing bytes are discarded regardless of value."""

    def test_header_bytes_ignored(self):
        blob = bytearray(FRAMED_VECTOR)
        blob[0:2] = b'\xff\xee'
        assert decode(APP_KEY, bytes(blob)) == b'dev-42'

    def test_round_trip_with_custom_framing(self):
        payload = bytes(range(256))
        blob = encode(APP_KEY, payload, header=b'\xaa\xbb', lead=b'\x01', prefix=b'\x02\x03')
        assert decode(APP_KEY, blob) == payload

    def test_round_trip_short_key(self):
        payload = b'a1b2c3d4-e5f6-4711-8899-aabbccddeeff'
        blob = encode('a1b2c3d4e5f647', payload)
        assert decode('a1b2c3d4e5f647', blob) == payload

    def test_round_trip_empty_payload(self):
        assert decode(APP_KEY, encode(APP_KEY, b'')) == b''

    def test_blob_length(self):
        assert len(encode(APP_KEY, b'x' * 10)) == 10 + 5

    def test_framing_only_blob_decodes_empty(self):
        assert decode(APP_KEY, b'\x00' * 5) == b''

    def test_truncated_blob_decodes_empty(self):
        assert decode(APP_KEY, b'\x00\x00\x01') == b''

    def test_encode_rejects_bad_framing(self):
        with pytest.raises(ValueError, match="Framing"):
            encode(APP_KEY, b'x', header=b'\x00')

    def test_wrong_key_gives_different_payload(self):
        blob = encode(APP_KEY, b'device secret')
        assert decode('0000000000000000', blob) != b'device secret'


class TestFeedback:
    """Ciphertext feedback makes the stream self-synchronizing."""

    def test_flipped_byte_corrupts_two_positions(self):
        payload = bytes(20)
        blob = bytearray(encode(APP_KEY, payload))
        # header(2) + lead(1) + prefix(2) puts payload[2] at blob[7]
        blob[7] ^= 0x80

        decoded = decode(APP_KEY, bytes(blob))
        changed = [i for i, (a, b) in enumerate(zip(decoded, payload)) if a != b]
        assert changed == [2, 3]

    def test_identical_plaintext_bytes_encode_differently(self):
        blob = encode(APP_KEY, b'\x00' * 16)
        body = blob[5:]
        assert len(set(body)) > 1
