"""
Ridi Shelf - Key Loading Utilities

Resolve the installation's device id from the reader's preference store and
derive per-book content keys from it.
"""
import base64
import binascii
import logging
import plistlib
from dataclasses import dataclass
from pathlib import Path
from xml.parsers.expat import ExpatError

from rs import simplecrypt
from rs.config import APP_KEY, DEVICE_ID_FIELD
from rs.crypto import BLOCK_SIZE, aes_ecb_decrypt
from rs.errors import KeyDerivationError, ResolutionError

logger = logging.getLogger(__name__)

CONTENT_KEY_SIZE = 16
KEY_WINDOW_SIZE = 64
CONTENT_KEY_OFFSET = 32


@dataclass(frozen=True)
class DeviceId:
    """
    Root secret for one reader installation.

    The reader handles the id as a one-byte-per-character string; `text`
    is that representation and is what all key slicing operates on.
    """
    raw: bytes

    @property
    def text(self) -> str:
        return self.raw.decode('latin-1')

    def __len__(self) -> int:
        return len(self.raw)

    def __repr__(self) -> str:
        return f'DeviceId(<{len(self.raw)} bytes>)'

    def unwrap_key(self) -> str:
        """Stream cipher key for the per-book key files."""
        return self.text[:16].replace('-', '')

    def ecb_key(self) -> bytes:
        """AES key for the second key-file pass."""
        return self.text[:16].encode('latin-1')

    def container_key(self) -> bytes:
        """AES key for container entries."""
        return self.text[2:18].encode('latin-1')


def decode_device_id(encoded: str, app_key: str = APP_KEY) -> DeviceId:
    """
    Decode the base64 device id field of the preference store.

    Raises:
        ResolutionError: If the field is not valid base64 or decodes empty
    """
    try:
        blob = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise ResolutionError(f"Device id field is not valid base64: {e}") from e

    raw = simplecrypt.decode(app_key, blob)
    if not raw:
        raise ResolutionError("Device id decoded to an empty value")
    return DeviceId(raw)


def resolve_device_id(prefs_path, app_key: str = APP_KEY) -> DeviceId:
    """
    Read the device id from the reader's binary property list.

    Raises:
        ResolutionError: If the store is missing, malformed or lacks the field
    """
    path = Path(prefs_path)
    try:
        with open(path, 'rb') as f:
            prefs = plistlib.load(f)
    except FileNotFoundError as e:
        raise ResolutionError(f"Preference store not found: {path}") from e
    except (OSError, plistlib.InvalidFileException, ValueError, ExpatError) as e:
        raise ResolutionError(f"Unreadable preference store {path}: {e}") from e

    if not isinstance(prefs, dict):
        raise ResolutionError(f"Preference store root is {type(prefs).__name__}, expected dict")

    encoded = prefs.get(DEVICE_ID_FIELD)
    if not isinstance(encoded, str):
        raise ResolutionError(f"Preference store has no '{DEVICE_ID_FIELD}' string field")

    device_id = decode_device_id(encoded, app_key)
    logger.debug("Resolved device id (%d bytes) from %s", len(device_id), path)
    return device_id


def load_key_file(path) -> bytes:
    """
    Load a raw per-book key file.

    Raises:
        KeyDerivationError: If the file cannot be read
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise KeyDerivationError(f"Cannot read key file {path}: {e}") from e


def derive_content_key(device_id: DeviceId, key_file: bytes) -> bytes:
    """
    Derive a book's 16-byte content key from its key file.

    Steps:
        1. Stream-decode the key file with the hyphen-stripped id prefix
        2. AES-ECB decrypt the result with the first 16 id characters
        3. Take bytes [32, 48) of the 64-byte window at offset len(id)

    Raises:
        KeyDerivationError: On any length or format violation
    """
    id_length = len(device_id.text)

    try:
        unwrapped = simplecrypt.decode(device_id.unwrap_key(), key_file)
    except ValueError as e:
        raise KeyDerivationError(f"Device id cannot key the stream cipher: {e}") from e

    ecb_key = device_id.ecb_key()
    if len(ecb_key) != 16:
        raise KeyDerivationError(f"Device id too short for an AES key: {len(ecb_key)} bytes")
    if len(unwrapped) < id_length + KEY_WINDOW_SIZE:
        raise KeyDerivationError(
            f"Key file too short: {len(unwrapped)} bytes unwrapped, "
            f"need {id_length + KEY_WINDOW_SIZE}"
        )
    if len(unwrapped) % BLOCK_SIZE != 0:
        raise KeyDerivationError(
            f"Unwrapped key file is not block aligned: {len(unwrapped)} bytes"
        )

    decrypted = aes_ecb_decrypt(ecb_key, unwrapped)
    window = decrypted[id_length:id_length + KEY_WINDOW_SIZE]
    return window[CONTENT_KEY_OFFSET:CONTENT_KEY_OFFSET + CONTENT_KEY_SIZE]
