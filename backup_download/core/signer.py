"""
SharedKey Request Signer

Computes the SharedKey authorization for read requests against the Azure
Files REST API. Everything here is a pure function of its inputs.

The string-to-sign is the HTTP verb, eleven empty standard headers
(Content-Encoding through Range; a GET sends none of them), the canonicalized
``x-ms-*`` headers in lexical order, and the canonicalized resource
``/<account>/<share>/<path>``, joined by newlines. It is signed with
HMAC-SHA256 using the base64-decoded account key.
"""

import base64
import binascii
import hashlib
import hmac
from datetime import datetime, timezone
from email.utils import formatdate
from typing import Dict, Optional

from ..config import AZURE_FILES_PROTOCOL_VERSION
from ..exceptions import InvalidCredential
from ..models.entities import BackupSource

# Content-Encoding, Content-Language, Content-Length, Content-MD5, Content-Type,
# Date, If-Modified-Since, If-Match, If-None-Match, If-Unmodified-Since, Range
STANDARD_HEADER_COUNT = 11


def format_rfc1123(moment: datetime) -> str:
    """Render a timestamp as an RFC 1123 date for the x-ms-date header."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return formatdate(moment.timestamp(), usegmt=True)


def build_string_to_sign(
    method: str,
    canonical_resource: str,
    date: str,
    version: str = AZURE_FILES_PROTOCOL_VERSION
) -> str:
    lines = [method.upper()]
    lines.extend([""] * STANDARD_HEADER_COUNT)
    lines.append(f"x-ms-date:{date}")
    lines.append(f"x-ms-version:{version}")
    lines.append(canonical_resource)
    return "\n".join(lines)


def decode_signing_key(signing_key: Optional[str]) -> bytes:
    """
    Decode a base64 storage account key.

    Raises:
        InvalidCredential: If the key is absent or not valid base64
    """
    if not signing_key:
        raise InvalidCredential("Storage account key is required to sign the request")
    try:
        key = base64.b64decode(signing_key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidCredential(f"Storage account key is not valid base64: {e}") from e
    if not key:
        raise InvalidCredential("Storage account key decodes to an empty value")
    return key


def sign(string_to_sign: str, signing_key: Optional[str]) -> str:
    """HMAC-SHA256 the string-to-sign and return the base64 digest."""
    key = decode_signing_key(signing_key)
    digest = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class RequestSigner:
    """
    Signs GET requests for one storage account.

    Example:
        ```python
        signer = RequestSigner()
        headers = signer.signed_headers(source, format_rfc1123(datetime.now(timezone.utc)))
        # {"x-ms-date": ..., "x-ms-version": "2021-08-06",
        #  "Authorization": "SharedKey <account>:<signature>"}
        ```
    """

    def __init__(self, protocol_version: str = AZURE_FILES_PROTOCOL_VERSION):
        self.protocol_version = protocol_version

    def signature(self, source: BackupSource, date: str, method: str = "GET") -> str:
        string_to_sign = build_string_to_sign(
            method, source.canonical_resource, date, self.protocol_version
        )
        return sign(string_to_sign, source.signing_key)

    def authorization_header(self, source: BackupSource, date: str, method: str = "GET") -> str:
        return f"SharedKey {source.account_name}:{self.signature(source, date, method)}"

    def signed_headers(self, source: BackupSource, date: str, method: str = "GET") -> Dict[str, str]:
        """Headers required by the Azure Files API for a signed request."""
        return {
            "x-ms-date": date,
            "x-ms-version": self.protocol_version,
            "Authorization": self.authorization_header(source, date, method),
        }
