from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from marketchat.config import get_settings

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


class SystemSettingsRead(BaseModel):
    name: str
    environment: str
    log_level: str
    database_driver: Optional[str] = None
    database_host: Optional[str] = None
    messages_table: str
    messages_recipient_column: str
    change_feed_channel: str
    optimistic_send: bool


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/settings", response_model=SystemSettingsRead)
def get_system_settings() -> SystemSettingsRead:
    """Return non-sensitive configuration for troubleshooting."""
    s = get_settings()

    # Extract safe database info only (no credentials)
    database_host = None
    database_driver = None
    try:
        url_obj = s.database_url_obj
        database_host = url_obj.host
        database_driver = url_obj.get_backend_name()
    except ValueError:
        pass

    return SystemSettingsRead(
        name=s.app_name,
        environment=s.environment,
        log_level=s.log_level,
        database_driver=database_driver,
        database_host=database_host,
        messages_table=s.messages_table,
        messages_recipient_column=s.messages_recipient_column,
        change_feed_channel=s.change_feed_channel,
        optimistic_send=s.optimistic_send,
    )
