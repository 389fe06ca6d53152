"""
Ridi Shelf - Book Assets

Classify a book folder by the asset it holds and decrypt single-stream
(PDF / EPUB) payloads with a book's content key.

Book folder layout:
    {library}/{id}/{id}.pdf | {id}.epub | {id}.zip
    {library}/{id}/{id}.dat            (pdf and epub only)
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from rs.crypto import BLOCK_SIZE, aes_cbc_decrypt_iv_zero, aes_ecb_decrypt, pkcs7_unpad
from rs.errors import DecryptionError, UnsupportedAssetError

KEY_FILE_EXT = 'dat'

# First CBC plaintext block of a PDF asset is a marker, not content
PDF_MARKER_SIZE = BLOCK_SIZE


class AssetFormat(Enum):
    """Asset shapes in probe order."""
    PDF = 'pdf'
    EPUB = 'epub'
    CONTAINER = 'zip'

    @property
    def extension(self) -> str:
        return self.value

    @property
    def needs_key_file(self) -> bool:
        return self is not AssetFormat.CONTAINER


@dataclass(frozen=True)
class EbookAsset:
    """The single asset found in a book folder."""
    book_id: str
    format: AssetFormat
    path: Path
    key_path: Optional[Path]

    @property
    def output_name(self) -> str:
        """Name of the decrypted file or directory in the output root."""
        if self.format is AssetFormat.CONTAINER:
            return self.book_id
        return f'{self.book_id}.{self.format.extension}'


def classify_book(library_path, book_id: str) -> Optional[EbookAsset]:
    """
    Detect which asset a book folder holds.

    Probes pdf, epub, then zip. Returns None when none of them exist.
    """
    folder = Path(library_path) / book_id
    for fmt in AssetFormat:
        candidate = folder / f'{book_id}.{fmt.extension}'
        if candidate.is_file():
            key_path = folder / f'{book_id}.{KEY_FILE_EXT}' if fmt.needs_key_file else None
            return EbookAsset(book_id=book_id, format=fmt, path=candidate, key_path=key_path)
    return None


def require_key_file(asset: EbookAsset) -> Path:
    """
    Check that a pdf/epub asset has its key file.

    Raises:
        UnsupportedAssetError: If the key file is missing
    """
    if asset.key_path is None:
        raise UnsupportedAssetError(f"{asset.format.name} assets have no key file")
    if not asset.key_path.is_file():
        raise UnsupportedAssetError(f"Key file missing: {asset.key_path.name}")
    return asset.key_path


def decrypt_pdf(content_key: bytes, data: bytes) -> bytes:
    """AES-128-CBC (zero IV), drop the marker block, strip padding."""
    plain = aes_cbc_decrypt_iv_zero(content_key, data)
    return pkcs7_unpad(plain)[PDF_MARKER_SIZE:]


def decrypt_epub(content_key: bytes, data: bytes) -> bytes:
    """AES-128-ECB over the whole stream, strip padding."""
    return pkcs7_unpad(aes_ecb_decrypt(content_key, data))


def decrypt_asset(fmt: AssetFormat, content_key: bytes, data: bytes) -> bytes:
    """
    Decrypt a single-stream asset.

    Raises:
        DecryptionError: If the cipher rejects the key, length or padding
        ValueError: For container assets, which are processed entry by entry
    """
    if fmt is AssetFormat.PDF:
        decryptor = decrypt_pdf
    elif fmt is AssetFormat.EPUB:
        decryptor = decrypt_epub
    else:
        raise ValueError(f"{fmt.name} assets are not a single stream")

    try:
        return decryptor(content_key, data)
    except ValueError as e:
        raise DecryptionError(f"{fmt.name} decryption failed: {e}") from e
