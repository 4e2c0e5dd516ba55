"""
Password hashing and signed bearer credentials.
Protection without paranoia.
"""

import hashlib
import secrets
import time
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from staroracle.config import get_settings


class InvalidToken(Exception):
    """The credential failed structure, signature or expiry checks."""


@lru_cache()
def get_password_context() -> CryptContext:
    settings = get_settings()
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=settings.bcrypt_rounds,
    )


def hash_password(password: str) -> str:
    """Transform plaintext into secure form. One-way journey."""
    return get_password_context().hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """Compare without revealing. Truth emerges."""
    if not hashed:
        return False
    return get_password_context().verify(plain, hashed)


def hash_token(token: str) -> str:
    """Sessions store this digest, never the bearer string itself."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token(length: int = 64) -> str:
    """Random hex string of ``length`` characters."""
    return secrets.token_hex(length // 2)


class TokenCodec:
    """Issues and verifies HS256 JWTs.

    A token is ``header.payload.signature``, each segment URL-safe base64
    without padding. The payload is readable by whoever holds the token, so
    claims must never carry secrets.
    """

    def __init__(self, secret: Optional[str], algorithm: str = "HS256"):
        if not secret:
            raise RuntimeError("JWT_SECRET is not configured. Refusing to sign tokens.")
        self._secret = secret
        self.algorithm = algorithm

    def issue(self, claims: Dict[str, Any], ttl: int) -> str:
        """Sign ``claims`` with ``iat`` and ``exp = iat + ttl`` injected."""
        if ttl <= 0:
            raise ValueError("Token lifetime must be positive.")
        issued_at = int(time.time())
        payload = dict(claims)
        payload["iat"] = issued_at
        payload["exp"] = issued_at + int(ttl)
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """Return the claims of a genuine, unexpired token.

        The signature is checked before any claim is trusted.
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise InvalidToken("Token must have exactly three segments.")
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token expired.")
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Invalid token: {e}")


def get_token_codec() -> TokenCodec:
    """FastAPI dependency; the codec is built from process-wide settings."""
    settings = get_settings()
    return TokenCodec(settings.jwt_secret, settings.jwt_algorithm)
