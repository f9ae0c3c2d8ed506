"""Message store adapters."""

from marketchat.adapters.base import BaseMessageStore
from marketchat.adapters.sql_store import SqlMessageStore

__all__ = ["BaseMessageStore", "SqlMessageStore"]
