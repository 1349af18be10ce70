from user_service.models.user import User, UserRole, UserStatus

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
]
