"""
Shared fixtures: synthetic device identities, key files, preference lists
and on-disk libraries built with the same primitives the reader uses.
"""
import base64
import plistlib
import struct
import sys
import zipfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from rs import simplecrypt
from rs.config import APP_KEY, DEVICE_ID_FIELD
from rs.crypto import aes_cbc_encrypt_iv_zero, aes_ecb_encrypt, aes_ecb_encrypt_pad, pkcs7_pad
from rs.keys import DeviceId

TEST_DEVICE_ID_TEXT = 'a1b2c3d4-e5f6-4711-8899-aabbccddeeff'
TEST_CONTENT_KEY = bytes.fromhex('00112233445566778899AABBCCDDEEFF')
PDF_MARKER = b'RIDI-PDF-MARKER!'


def build_key_file(device_id: DeviceId, content_key: bytes, filler: int = 0x5A) -> bytes:
    """Wrap a content key the way the reader stores it in {id}.dat."""
    id_length = len(device_id.text)
    size = id_length + 64
    size += -size % 16
    plain = bytearray([filler]) * size
    plain[id_length + 32:id_length + 48] = content_key
    wrapped = aes_ecb_encrypt(device_id.ecb_key(), bytes(plain))
    return simplecrypt.encode(device_id.unwrap_key(), wrapped)


def build_prefs(path: Path, device_text: str = TEST_DEVICE_ID_TEXT) -> Path:
    """Write a binary preference list holding a wrapped device id."""
    blob = simplecrypt.encode(APP_KEY, device_text.encode('latin-1'), header=b'\x03\x01')
    prefs = {
        DEVICE_ID_FIELD: base64.b64encode(blob).decode('ascii'),
        'general.language': 'ko',
    }
    with open(path, 'wb') as f:
        plistlib.dump(prefs, f, fmt=plistlib.FMT_BINARY)
    return path


def encrypt_pdf(content_key: bytes, payload: bytes) -> bytes:
    return aes_cbc_encrypt_iv_zero(content_key, pkcs7_pad(PDF_MARKER + payload))


def encrypt_epub(content_key: bytes, payload: bytes) -> bytes:
    return aes_ecb_encrypt_pad(content_key, payload)


def build_container(path: Path, device_id: DeviceId, entries,
                    compression: int = zipfile.ZIP_STORED) -> Path:
    """
    Write a container. entries maps names to plaintext bytes; names ending
    in '/' become directory markers, raw bytes wrapped in a tuple are stored
    without encryption.
    """
    key = device_id.container_key()
    with zipfile.ZipFile(path, 'w', compression) as zf:
        for name, content in entries.items():
            if name.endswith('/'):
                zf.writestr(name, b'')
            elif isinstance(content, tuple):
                zf.writestr(name, content[0])
            else:
                zf.writestr(name, aes_ecb_encrypt_pad(key, content))
    return path


def corrupt_deflate_entry(path: Path, name: str) -> None:
    """Overwrite the first block header of a deflated entry with an invalid block type."""
    with zipfile.ZipFile(path) as zf:
        offset = zf.getinfo(name).header_offset
    with open(path, 'r+b') as f:
        f.seek(offset + 26)
        name_length, extra_length = struct.unpack('<HH', f.read(4))
        f.seek(offset + 30 + name_length + extra_length)
        f.write(b'\xff')


@pytest.fixture
def device_id():
    return DeviceId(TEST_DEVICE_ID_TEXT.encode('latin-1'))


@pytest.fixture
def content_key():
    return TEST_CONTENT_KEY


@pytest.fixture
def prefs_file(tmp_path):
    return build_prefs(tmp_path / 'com.ridibooks.Ridibooks.plist')


@pytest.fixture
def library(tmp_path, device_id, content_key):
    """
    A library with one book of every shape:
        100 pdf, 200 epub, 300 container, 400 nothing downloaded,
        500 epub without key file, 600 epub with truncated payload
    """
    root = tmp_path / 'library'
    key_file = build_key_file(device_id, content_key)

    def book(book_id):
        folder = root / book_id
        folder.mkdir(parents=True)
        return folder

    folder = book('100')
    (folder / '100.pdf').write_bytes(encrypt_pdf(content_key, b'%PDF-1.7 sample body'))
    (folder / '100.dat').write_bytes(key_file)

    folder = book('200')
    (folder / '200.epub').write_bytes(encrypt_epub(content_key, b'PK\x03\x04 epub body'))
    (folder / '200.dat').write_bytes(key_file)

    folder = book('300')
    build_container(folder / '300.zip', device_id, {
        'images/': None,
        'images/001.jpg': b'\xff\xd8\xff page one',
        'images/002.jpg': b'\xff\xd8\xff page two',
    })

    book('400')

    folder = book('500')
    (folder / '500.epub').write_bytes(encrypt_epub(content_key, b'orphan'))

    folder = book('600')
    (folder / '600.epub').write_bytes(encrypt_epub(content_key, b'cut short')[:-3])
    (folder / '600.dat').write_bytes(key_file)

    return root
