from marketchat.models.message import Message
from marketchat.models.profile import AppRole, Profile, UserRole

__all__ = [
    "AppRole",
    "Message",
    "Profile",
    "UserRole",
]
