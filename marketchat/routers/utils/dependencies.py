from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from fastapi.requests import HTTPConnection
from sqlalchemy.orm import Session

from marketchat.adapters.sql_store import SqlMessageStore
from marketchat.core.change_feed import ChangeFeed
from marketchat.db import get_db


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> UUID:
    """FastAPI dependency resolving the caller's identity from X-User-Id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")


def get_change_feed(connection: HTTPConnection) -> ChangeFeed:
    return connection.app.state.change_feed


def get_message_store(
    feed: ChangeFeed = Depends(get_change_feed),
    db: Session = Depends(get_db),
) -> SqlMessageStore:
    """FastAPI dependency building a store over the request session and the app's feed."""
    return SqlMessageStore(db, feed)
