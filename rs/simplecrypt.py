"""
Ridi Shelf - Stream Cipher Codec

Ciphertext-feedback XOR stream used by the reader to wrap the device id in
its preference store and the per-book key files.

Wire layout of an encoded blob:
    [2 header bytes][ciphered: 1 lead byte, 2 prefix bytes, payload]

All five framing bytes are discarded on decode. Their values are not
interpreted.
"""
import string
from typing import Sequence, Tuple, Union

KEY_SLOTS = 8
HEADER_SIZE = 2
LEAD_SIZE = 1
PREFIX_SIZE = 2

StreamKey = Tuple[int, ...]


def parse_key(hex_key: str) -> StreamKey:
    """
    Build the keystream table from a hex string.

    The string is split into byte pairs which are then reversed. Keys
    shorter than 16 hex characters leave the trailing slots zero.

    Raises:
        ValueError: If the string is not even-length hex of at most 16 chars
    """
    if any(ch not in string.hexdigits for ch in hex_key):
        raise ValueError(f"Key must be hex, got {hex_key!r}")
    if len(hex_key) % 2 != 0:
        raise ValueError(f"Key must have an even number of hex characters, got {len(hex_key)}")
    if len(hex_key) > KEY_SLOTS * 2:
        raise ValueError(f"Key must be at most {KEY_SLOTS * 2} hex characters, got {len(hex_key)}")

    parts = [int(hex_key[i:i + 2], 16) for i in range(0, len(hex_key), 2)]
    parts.reverse()
    return tuple(parts + [0] * (KEY_SLOTS - len(parts)))


def _as_key(key: Union[str, Sequence[int]]) -> StreamKey:
    if isinstance(key, str):
        return parse_key(key)
    if len(key) != KEY_SLOTS:
        raise ValueError(f"Key table must have {KEY_SLOTS} slots, got {len(key)}")
    return tuple(key)


def _as_bytes(data: Union[bytes, bytearray, str]) -> bytes:
    # Strings are "binary strings": one byte per character.
    if isinstance(data, str):
        return data.encode('latin-1')
    return bytes(data)


def decode(key: Union[str, Sequence[int]], ciphertext: Union[bytes, bytearray, str]) -> bytes:
    """Decode an encoded blob and return its payload."""
    table = _as_key(key)
    ctext = _as_bytes(ciphertext)[HEADER_SIZE:]

    plain = bytearray(len(ctext))
    last = 0
    for i, c in enumerate(ctext):
        plain[i] = c ^ last ^ table[i % KEY_SLOTS]
        last = c

    return bytes(plain[LEAD_SIZE:][PREFIX_SIZE:])


def encode(
    key: Union[str, Sequence[int]],
    payload: bytes,
    header: bytes = b'\x00\x00',
    lead: bytes = b'\x00',
    prefix: bytes = b'\x00\x00',
) -> bytes:
    """
    Encode a payload so that decode() returns it unchanged.

    Framing bytes can be overridden to reproduce captured blobs.
    """
    if len(header) != HEADER_SIZE or len(lead) != LEAD_SIZE or len(prefix) != PREFIX_SIZE:
        raise ValueError("Framing must be 2 header, 1 lead and 2 prefix bytes")

    table = _as_key(key)
    plain = lead + prefix + _as_bytes(payload)

    ctext = bytearray(len(plain))
    last = 0
    for i, p in enumerate(plain):
        c = p ^ last ^ table[i % KEY_SLOTS]
        ctext[i] = c
        last = c

    return bytes(header) + bytes(ctext)
