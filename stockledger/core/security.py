from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status

from stockledger.config import get_settings

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class ActorContext:
    """Caller identity handed explicitly to every mutation and query."""

    actor_id: str
    shop_id: Optional[int] = None
    auth_type: str = "anonymous"


SYSTEM_CONTEXT = ActorContext(actor_id=SYSTEM_ACTOR, auth_type="system")


def _load_api_keys() -> set[str]:
    settings = get_settings()
    keys = set()
    if settings.API_KEYS:
        for value in settings.API_KEYS.split(","):
            value = value.strip()
            if value:
                keys.add(value)
    return keys


def _get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_jwt(token: str) -> dict:
    import jwt

    settings = get_settings()
    if not settings.JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT auth is not configured",
        )

    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=options,
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid JWT",
        ) from exc


def _parse_shop_id(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid shop id: {!r}".format(value),
        ) from exc


def resolve_actor(
    *,
    api_key: Optional[str],
    authorization: Optional[str],
    actor_header: Optional[str] = None,
    shop_header: Optional[str] = None,
) -> ActorContext:
    """Turn request credentials into an ``ActorContext``.

    API keys identify the calling service; the acting user then comes from the
    actor header. A JWT carries both in its ``sub`` and ``shop_id`` claims.
    With no keys and no JWT secret configured the service runs open (local
    development) and trusts the headers as given.
    """
    settings = get_settings()
    keys = _load_api_keys()

    token = _get_bearer_token(authorization)
    if token:
        payload = _decode_jwt(token)
        actor_id = str(payload.get("sub") or actor_header or "").strip()
        if not actor_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="JWT is missing a subject",
            )
        return ActorContext(
            actor_id=actor_id,
            shop_id=_parse_shop_id(payload.get("shop_id", shop_header)),
            auth_type="jwt",
        )

    if settings.JWT_REQUIRED:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    if api_key and api_key in keys:
        return ActorContext(
            actor_id=(actor_header or "").strip() or "api-key",
            shop_id=_parse_shop_id(shop_header),
            auth_type="api_key",
        )

    if keys or settings.JWT_SECRET:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    return ActorContext(
        actor_id=(actor_header or "").strip() or "anonymous",
        shop_id=_parse_shop_id(shop_header),
    )


__all__ = ["ActorContext", "SYSTEM_ACTOR", "SYSTEM_CONTEXT", "resolve_actor"]
