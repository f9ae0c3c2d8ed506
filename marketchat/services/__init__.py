from marketchat.services.message_service import MessageService
from marketchat.services.profile_service import ProfileService

__all__ = [
    "MessageService",
    "ProfileService",
]
