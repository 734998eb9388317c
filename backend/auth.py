"""Bearer token issuance and verification for the API handlers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from classroom.models import ModelValidationError, Principal

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class AuthConfigError(RuntimeError):
    """Raised when signing secrets or token lifetimes are misconfigured."""


class AuthError(ValueError):
    """Raised when a request carries a missing, invalid or unauthorized credential."""

    def __init__(self, status_code: int, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message}
        if self.code:
            payload["error"] = self.code
        return payload


@dataclass(frozen=True)
class AuthConfig:
    """Signing secrets and token lifetimes."""

    secret: str
    refresh_secret: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=30)
    refresh_ttl: timedelta = timedelta(days=7)
    cookie_domain: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "AuthConfig":
        source = os.environ if env is None else env
        secret = source.get("JWT_SECRET", "").strip()
        if not secret:
            raise AuthConfigError("server misconfiguration: JWT_SECRET missing")
        refresh_secret = source.get("JWT_REFRESH_SECRET", "").strip() or secret

        try:
            access_minutes = int(source.get("ACCESS_TOKEN_TTL_MINUTES", "30"))
            refresh_days = int(source.get("REFRESH_TOKEN_TTL_DAYS", "7"))
        except ValueError as exc:
            raise AuthConfigError("token TTL settings must be integers") from exc

        return cls(
            secret=secret,
            refresh_secret=refresh_secret,
            algorithm=source.get("JWT_ALGORITHM", "HS256").strip() or "HS256",
            access_ttl=timedelta(minutes=access_minutes),
            refresh_ttl=timedelta(days=refresh_days),
            cookie_domain=source.get("COOKIE_DOMAIN", "").strip() or None,
        )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def _encode(claims: Mapping[str, Any], *, secret: str, algorithm: str, ttl: timedelta, token_type: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {key: value for key, value in claims.items() if value is not None}
    payload.update({"iat": now, "exp": now + ttl, "type": token_type})
    return jwt.encode(payload, secret, algorithm=algorithm)


def issue_token_pair(claims: Mapping[str, Any], config: AuthConfig) -> dict[str, str]:
    """Issue an access token carrying the profile claims and a minimal refresh token."""
    access_token = _encode(
        claims,
        secret=config.secret,
        algorithm=config.algorithm,
        ttl=config.access_ttl,
        token_type=TOKEN_TYPE_ACCESS,
    )
    refresh_token = _encode(
        {"sub": claims.get("sub"), "role": claims.get("role")},
        secret=config.refresh_secret,
        algorithm=config.algorithm,
        ttl=config.refresh_ttl,
        token_type=TOKEN_TYPE_REFRESH,
    )
    return {"accessToken": access_token, "refreshToken": refresh_token}


def _decode(token: str, *, secret: str, algorithm: str, token_type: str) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError as exc:
        raise AuthError(401, "Token expired", "TOKEN_EXPIRED") from exc
    except JWTError as exc:
        raise AuthError(401, "Invalid token", "INVALID_TOKEN") from exc

    if claims.get("type") != token_type:
        raise AuthError(401, "Invalid token", "INVALID_TOKEN")
    return claims


def decode_access_token(token: str, config: AuthConfig) -> dict[str, Any]:
    return _decode(token, secret=config.secret, algorithm=config.algorithm, token_type=TOKEN_TYPE_ACCESS)


def decode_refresh_token(token: str, config: AuthConfig) -> dict[str, Any]:
    return _decode(token, secret=config.refresh_secret, algorithm=config.algorithm, token_type=TOKEN_TYPE_REFRESH)


def bearer_token(headers: Mapping[str, str]) -> str:
    raw = headers.get("authorization", "")
    if not raw.startswith("Bearer ") or not raw[len("Bearer ") :].strip():
        raise AuthError(401, "Authorization header missing or invalid")
    return raw[len("Bearer ") :].strip()


def require_principal(headers: Mapping[str, str], config: AuthConfig, *roles: str) -> Principal:
    """Verify the bearer token and, when roles are given, the caller's role."""
    claims = decode_access_token(bearer_token(headers), config)
    try:
        principal = Principal.from_claims(claims)
    except ModelValidationError as exc:
        raise AuthError(401, "Invalid token", "INVALID_TOKEN") from exc

    if roles and principal.role not in roles:
        required = " or ".join(role.capitalize() for role in roles)
        raise AuthError(403, f"Access denied. {required} role required.", "FORBIDDEN")
    return principal
