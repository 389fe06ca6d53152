"""
Ridi Shelf - Local library decryption toolkit.
"""
__version__ = "1.0.0"
