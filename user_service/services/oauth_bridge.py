import logging

from user_service.auth.google import GoogleIdentity
from user_service.errors import ForbiddenError, UnauthorizedError
from user_service.models.user import UserRole, UserStatus
from user_service.schemas import UserRead
from user_service.services.user_repository import UserRepository

logger = logging.getLogger(__name__)


class OAuthIdentityBridge:
    """Maps a verified Google identity onto a local user.

    The email is the correlation key. A pre-existing account gets its
    ``googleId`` attached on its first federated login; an unseen email
    becomes a new ``student`` account.
    """

    def __init__(self, repository: UserRepository):
        self.repository = repository

    async def resolve(self, identity: GoogleIdentity) -> UserRead:
        if not identity.email:
            raise UnauthorizedError("No email found in Google profile")

        user = await self.repository.get_by_email(identity.email)

        if user is None:
            user = await self.repository.create(
                {
                    "email": identity.email,
                    "firstName": identity.first_name or identity.email.split("@")[0],
                    "lastName": identity.last_name or "-",
                    "googleId": identity.subject,
                    "status": UserStatus.ACTIVE,
                    "role": UserRole.STUDENT,
                }
            )
            logger.info("Created user %s from Google login", user.id)
            return user

        if not user.google_id and identity.subject:
            # update() re-reads the row after writing
            user = await self.repository.update(user.id, {"googleId": identity.subject})
            logger.info("Linked Google account to existing user %s", user.id)

        if not user.is_active:
            logger.info("Refused Google login for %s user %s", user.status.value, user.id)
            raise ForbiddenError("Your account is not active. Please contact support.")
        return user
