"""
Backup Download Core

Request signing and the caching fetcher.
"""

from .signer import RequestSigner, build_string_to_sign, format_rfc1123, sign
from .fetcher import BackupFetcher

__all__ = [
    'RequestSigner',
    'build_string_to_sign',
    'format_rfc1123',
    'sign',
    'BackupFetcher'
]
