"""
Ridi Shelf - Error Types

ResolutionError is fatal for a run. The others are scoped to a single book.
"""


class ShelfError(Exception):
    """Base class for all library decryption errors."""


class ResolutionError(ShelfError):
    """Device identity could not be obtained from the preference store."""


class UnsupportedAssetError(ShelfError):
    """Book folder has no known asset, or is missing its key file."""


class KeyDerivationError(ShelfError):
    """Key file contents could not be turned into a content key."""


class DecryptionError(ShelfError):
    """Bulk decryption of an asset was rejected by the cipher."""
