"""Request integrity guard.

The serving layer hashes the query string it sent and passes the hash plus the
hashed prefix length alongside the request. Recomputing the hash here catches
proxies or caches that altered the query in transit. The hash is shared and not
secret; this is not a signature.
"""

from __future__ import annotations

import logging
from typing import Final

from beetle.domain.errors import TamperDetected

log = logging.getLogger(__name__)

REQUEST_HASH_HEADER: Final[str] = "x-beetle-request"
REQUEST_HASH_LENGTH_HEADER: Final[str] = "x-beetle-request-len"

_INT32_MASK: Final[int] = 0xFFFFFFFF


def create_query_hash(value: str) -> int:
    """Signed 32-bit string hash (``h = h * 31 + code``), as computed by the client library."""

    result = 0
    for char in value:
        result = (result * 31 + ord(char)) & _INT32_MASK
    return result - (1 << 32) if result & 0x80000000 else result


def check_request_hash(
    query_string: str,
    client_hash: str | None,
    hash_length: str | int | None,
) -> bool:
    """Validate ``client_hash`` against the first ``hash_length`` characters of ``query_string``.

    Returns ``False`` when either value is absent (the check is skipped for the request)
    and ``True`` when it passed. A mismatch raises :class:`TamperDetected`.
    """

    if client_hash is None or not str(client_hash).strip():
        return False
    if hash_length is None or not str(hash_length).strip():
        return False

    try:
        length = int(hash_length)
    except ValueError:
        raise TamperDetected(f"Invalid request hash length: {hash_length!r}") from None
    if length < 0 or length > len(query_string):
        raise TamperDetected(f"Invalid request hash length: {hash_length!r}")

    server_hash = str(create_query_hash(query_string[:length]))
    if server_hash != str(client_hash).strip():
        log.warning("Request hash mismatch for query prefix of length %s", length)
        raise TamperDetected("The request has been altered in transit")
    return True


def check_request_headers(query_string: str, headers: dict[str, str]) -> bool:
    """Run :func:`check_request_hash` with values taken from (case-insensitive) headers."""

    lowered = {key.lower(): value for key, value in headers.items()}
    return check_request_hash(
        query_string,
        lowered.get(REQUEST_HASH_HEADER),
        lowered.get(REQUEST_HASH_LENGTH_HEADER),
    )
