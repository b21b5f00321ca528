from typing import Optional

from fastapi import Header

from stockledger.config import get_settings
from stockledger.core.security import ActorContext, resolve_actor
from stockledger.database.session import get_db

settings = get_settings()


def get_actor(
    api_key: Optional[str] = Header(None, alias=settings.API_KEY_HEADER),
    api_key_alt: Optional[str] = Header(None, alias="api-key"),
    authorization: Optional[str] = Header(None),
    actor_id: Optional[str] = Header(None, alias=settings.ACTOR_HEADER),
    shop_id: Optional[str] = Header(None, alias=settings.SHOP_HEADER),
) -> ActorContext:
    return resolve_actor(
        api_key=api_key or api_key_alt,
        authorization=authorization,
        actor_header=actor_id,
        shop_header=shop_id,
    )


__all__ = ["get_actor", "get_db"]
