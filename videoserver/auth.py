"""Bearer API key authentication for the upload endpoints."""

import getpass
import hashlib
import sys
from typing import Dict, Optional, Sequence, Tuple

import bcrypt
from fastapi import Header

from videoserver import config
from videoserver.exceptions import InvalidAPIKeyError

ANONYMOUS_CALLER = "anonymous"

# sha256(key) + configured hashes -> caller id, so bcrypt runs once per key
_verified_keys: Dict[Tuple[str, Tuple[str, ...]], str] = {}


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key using bcrypt.

    Args:
        api_key: Plain text key

    Returns:
        Bcrypt hash suitable for VIDEO_API_KEY_HASHES
    """
    return bcrypt.hashpw(api_key.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_api_key(api_key: str, key_hash: str) -> bool:
    """
    Verify an API key against a bcrypt hash.

    Returns:
        True if the key matches; False for a mismatch or a malformed hash
    """
    try:
        return bcrypt.checkpw(api_key.encode('utf-8'), key_hash.encode('utf-8'))
    except ValueError:
        return False


def caller_id(api_key: str) -> str:
    """Stable, non-reversible identifier of the caller holding api_key."""
    return "key_" + hashlib.sha256(api_key.encode('utf-8')).hexdigest()[:16]


def authenticate(authorization: Optional[str], key_hashes: Sequence[str]) -> str:
    """
    Resolve the caller of a request.

    Args:
        authorization: Authorization header value (format: "Bearer <api_key>")
        key_hashes: Accepted bcrypt hashes; empty disables authentication

    Returns:
        Caller id

    Raises:
        InvalidAPIKeyError: If the header is missing, malformed or the key is unknown
    """
    if not key_hashes:
        return ANONYMOUS_CALLER

    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidAPIKeyError("Missing or invalid authorization header")

    api_key = authorization[len("Bearer "):].strip()
    if not api_key:
        raise InvalidAPIKeyError("Missing or invalid authorization header")

    cache_key = (hashlib.sha256(api_key.encode('utf-8')).hexdigest(), tuple(key_hashes))
    cached = _verified_keys.get(cache_key)
    if cached:
        return cached

    if not any(verify_api_key(api_key, key_hash) for key_hash in key_hashes):
        raise InvalidAPIKeyError("Invalid API key")

    caller = caller_id(api_key)
    _verified_keys[cache_key] = caller
    return caller


async def get_current_caller(authorization: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency returning the caller id of the request.

    Raises:
        InvalidAPIKeyError: 401 if authentication is enabled and fails
    """
    return authenticate(authorization, config.API_KEY_HASHES)


def main() -> None:
    """Print a bcrypt hash for an API key (argument or prompt)."""
    api_key = sys.argv[1] if len(sys.argv) > 1 else getpass.getpass("API key: ")
    if not api_key:
        print("API key must not be empty", file=sys.stderr)
        sys.exit(1)
    print(hash_api_key(api_key))


if __name__ == "__main__":
    main()
