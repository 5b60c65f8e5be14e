"""
Security helpers for password hashing, tokens and role checks.

Access and refresh tokens are compact JWTs signed with HMAC-SHA256.
Each embeds the user's e-mail as ``sub``, a ``type`` claim
(``access`` or ``refresh``) and an expiration timestamp (``exp``).
Refresh tokens are signed with a separate secret so one can never be
used in place of the other.

Passwords are hashed with PBKDF2-HMAC-SHA256 and stored as
``salthex$hashhex``.  E-mail verification and password reset tokens
are random hex strings whose SHA-256 digest is stored, so a database
leak does not expose usable links.
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
import secrets
import time
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .db import get_connection
from ..services.settings_service import SettingsService

ROLE_ADMIN = 1
ROLE_PROVIDER = 2
ROLE_CUSTOMER = 3

ROLE_NAMES = {ROLE_ADMIN: "admin", ROLE_PROVIDER: "provider", ROLE_CUSTOMER: "customer"}
ROLE_IDS = {name: role_id for role_id, name in ROLE_NAMES.items()}

PBKDF2_ITERATIONS = 100_000
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


def _b64_url_encode(data: bytes) -> str:
    """Base64-url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode a base64-url string, adding padding if necessary."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def _encode_token(claims: Dict, secret: str, lifetime_seconds: int) -> str:
    to_encode = dict(claims)
    to_encode["exp"] = int(time.time()) + lifetime_seconds
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, secret))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def _decode_token(token: str, secret: str, expected_type: str) -> Optional[Dict]:
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    try:
        actual_sig = _b64_url_decode(signature_b64)
        if not hmac.compare_digest(_sign(signing_input, secret), actual_sig):
            return None
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    if data.get("exp") is None or int(data["exp"]) < int(time.time()):
        return None
    if data.get("type") != expected_type:
        return None
    return data


def create_access_token(data: Dict[str, str], expires_delta: Optional[int] = None) -> str:
    """Create a signed access token with the given claims.

    Parameters
    ----------
    data : dict
        Claims to embed in the token (e.g. ``{"sub": "user@example.com"}``).
    expires_delta : Optional[int]
        Lifetime of the token in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.

    Returns
    -------
    str
        A token of the form ``header.payload.signature``.  Clients send it
        in the ``Authorization`` header as ``Bearer <token>``.
    """
    lifetime = expires_delta or settings.access_token_expire_minutes * 60
    return _encode_token({**data, "type": "access"}, settings.secret_key, lifetime)


def create_refresh_token(data: Dict[str, str]) -> str:
    """Create a long-lived refresh token, signed with the refresh secret."""
    lifetime = settings.refresh_token_expire_minutes * 60
    return _encode_token({**data, "type": "refresh"}, settings.refresh_secret_key, lifetime)


def decode_access_token(token: str) -> Optional[Dict]:
    """Verify an access token and return its claims, or ``None`` when invalid or expired."""
    return _decode_token(token, settings.secret_key, "access")


def decode_refresh_token(token: str) -> Optional[Dict]:
    return _decode_token(token, settings.refresh_secret_key, "refresh")


def create_token_pair(email: str) -> Dict[str, str]:
    return {
        "access_token": create_access_token({"sub": email}),
        "refresh_token": create_refresh_token({"sub": email}),
        "token_type": "bearer",
    }


security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(payload: Dict) -> Dict:
    """Attach ``user_id``, ``role_id`` and ``role`` for the token subject.

    Raises 401 when the subject no longer exists or has been deactivated.
    """
    conn = get_connection()
    try:
        user_row = conn.execute(
            "SELECT id, role_id, is_active FROM users WHERE email = ?",
            (payload.get("sub"),),
        ).fetchone()
    finally:
        conn.close()
    if not user_row:
        raise _unauthorized("User no longer exists")
    if not user_row["is_active"]:
        raise _unauthorized("User account is deactivated")
    payload["user_id"] = user_row["id"]
    payload["role_id"] = user_row["role_id"]
    payload["role"] = ROLE_NAMES.get(user_row["role_id"], "customer")
    return payload


async def get_current_user(request: Request, credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict:
    """Dependency that retrieves the current authenticated user.

    Raises HTTP 401 when the ``Authorization`` header is missing, the
    token is invalid or expired, or the user it names is gone or
    deactivated.  While ``maintenance_mode`` is on, write requests from
    anyone but an administrator get HTTP 503.  On success returns the
    token claims extended with the user's id and role.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Invalid or expired token")
    user = _resolve_user(payload)
    if request.method not in SAFE_METHODS and user["role_id"] != ROLE_ADMIN:
        if await SettingsService.get_value("maintenance_mode", False):
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="The platform is under maintenance",
            )
    return user


def get_optional_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Optional[Dict]:
    """Like ``get_current_user`` but returns ``None`` for anonymous or invalid requests."""
    if credentials is None:
        return None
    payload = decode_access_token(credentials.credentials)
    if not payload:
        return None
    try:
        return _resolve_user(payload)
    except HTTPException:
        return None


def require_roles(*role_ids: int) -> Callable[[Dict], Dict]:
    """Dependency factory enforcing that the current user holds one of ``role_ids``.

    Use as ``Depends(require_roles(ROLE_ADMIN))``.  Users with any other
    role receive HTTP 403.
    """

    def _role_dependency(current_user: Dict = Depends(get_current_user)) -> Dict:
        if current_user.get("role_id") not in role_ids:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _role_dependency


def hash_password(password: str) -> str:
    """Hash a password using PBKDF2-HMAC with SHA-256.

    A 16-byte random salt is generated for each password.  The result
    contains the salt and hash in hex separated by ``$``.
    """
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${dk.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a stored ``salt$hash`` string."""
    try:
        salt_hex, hash_hex = hashed_password.split("$", 1)
        salt = bytes.fromhex(salt_hex)
        stored_hash = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac("sha256", plain_password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(dk, stored_hash)


def generate_token() -> str:
    """Random token sent to the user in verification and reset links."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Digest stored in the database for a token returned by ``generate_token``."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_otp() -> str:
    """Six-digit one-time password for phone verification."""
    return f"{secrets.randbelow(900_000) + 100_000}"
