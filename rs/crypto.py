"""
Ridi Shelf - Core Crypto Functions

AES-128 ECB and CBC helpers for key files and book payloads.
"""
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

BLOCK_SIZE = 16
ZERO_IV = b'\x00' * BLOCK_SIZE


def _check_key(key: bytes) -> None:
    if len(key) != 16:
        raise ValueError(f"Key must be 16 bytes for AES-128, got {len(key)} bytes")


def _check_aligned(data: bytes) -> None:
    if len(data) % BLOCK_SIZE != 0:
        raise ValueError(f"Data must be 16-byte aligned, got {len(data)} bytes")


def aes_ecb_decrypt(key: bytes, data: bytes) -> bytes:
    """
    AES-128-ECB decryption (no IV, no unpadding).

    Raises:
        ValueError: If key is not 16 bytes or data is not 16-byte aligned
    """
    _check_key(key)
    _check_aligned(data)
    return AES.new(key, AES.MODE_ECB).decrypt(data)


def aes_ecb_encrypt(key: bytes, data: bytes) -> bytes:
    """AES-128-ECB encryption of block-aligned data."""
    _check_key(key)
    _check_aligned(data)
    return AES.new(key, AES.MODE_ECB).encrypt(data)


def aes_ecb_decrypt_unpad(key: bytes, data: bytes) -> bytes:
    """AES-128-ECB decryption with PKCS7 unpadding."""
    return unpad(aes_ecb_decrypt(key, data), BLOCK_SIZE)


def aes_ecb_encrypt_pad(key: bytes, data: bytes) -> bytes:
    """AES-128-ECB encryption with PKCS7 padding."""
    return aes_ecb_encrypt(key, pad(data, BLOCK_SIZE))


def aes_cbc_decrypt_iv_zero(key: bytes, data: bytes) -> bytes:
    """
    AES-128-CBC with IV=0, no unpadding.

    The PDF layout relies on the first plaintext block being a throwaway
    marker, so the zero IV only affects data that is discarded anyway.
    """
    _check_key(key)
    _check_aligned(data)
    return AES.new(key, AES.MODE_CBC, ZERO_IV).decrypt(data)


def aes_cbc_encrypt_iv_zero(key: bytes, data: bytes) -> bytes:
    """AES-128-CBC encryption with IV=0 (data must be 16-byte aligned)."""
    _check_key(key)
    _check_aligned(data)
    return AES.new(key, AES.MODE_CBC, ZERO_IV).encrypt(data)


def pkcs7_pad(data: bytes) -> bytes:
    """Pad to the AES block size."""
    return pad(data, BLOCK_SIZE)


def pkcs7_unpad(data: bytes) -> bytes:
    """
    Strip PKCS7 padding.

    Raises:
        ValueError: If the padding is malformed
    """
    return unpad(data, BLOCK_SIZE)
