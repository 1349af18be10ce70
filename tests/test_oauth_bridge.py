import httpx
import pytest

from user_service.auth.google import GoogleIdentity, GoogleOAuthClient
from user_service.errors import ForbiddenError, UnauthorizedError
from user_service.models.user import UserRole, UserStatus
from user_service.services.oauth_bridge import OAuthIdentityBridge

IDENTITY = GoogleIdentity(
    subject="google-sub-1",
    email="grace@example.com",
    given_name="Grace",
    family_name="Hopper",
    display_name="Grace Hopper",
)


@pytest.mark.asyncio
async def test_first_login_creates_one_user_with_google_id(repository):
    user = await OAuthIdentityBridge(repository).resolve(IDENTITY)

    assert user.email == "grace@example.com"
    assert user.first_name == "Grace"
    assert user.last_name == "Hopper"
    assert user.google_id == "google-sub-1"
    assert user.role == UserRole.STUDENT
    assert user.status == UserStatus.ACTIVE
    assert await repository.count() == 1


@pytest.mark.asyncio
async def test_second_login_reuses_the_same_user(repository):
    bridge = OAuthIdentityBridge(repository)

    first = await bridge.resolve(IDENTITY)
    second = await bridge.resolve(IDENTITY)

    assert second.id == first.id
    assert second.updated_at == first.updated_at
    assert await repository.count() == 1


@pytest.mark.asyncio
async def test_existing_email_gets_google_id_attached(repository):
    existing = await repository.create(
        {"email": "grace@example.com", "firstName": "G", "lastName": "H", "role": UserRole.FACULTY}
    )
    assert existing.google_id is None

    user = await OAuthIdentityBridge(repository).resolve(IDENTITY)

    assert user.id == existing.id
    assert user.google_id == "google-sub-1"
    assert user.role == UserRole.FACULTY
    assert user.first_name == "G"
    assert await repository.count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [UserStatus.SUSPENDED, UserStatus.INACTIVE])
async def test_inactive_account_cannot_log_in(repository, status):
    await repository.create(
        {"email": "grace@example.com", "firstName": "G", "lastName": "H", "status": status}
    )

    with pytest.raises(ForbiddenError):
        await OAuthIdentityBridge(repository).resolve(IDENTITY)
    assert await repository.count() == 1


@pytest.mark.asyncio
async def test_identity_without_email_cannot_log_in(repository):
    with pytest.raises(UnauthorizedError):
        await OAuthIdentityBridge(repository).resolve(GoogleIdentity(subject="no-email"))
    assert await repository.count() == 0


@pytest.mark.asyncio
async def test_names_fall_back_to_display_name(repository):
    identity = GoogleIdentity(subject="s-2", email="alan@example.com", display_name="Alan Mathison Turing")

    user = await OAuthIdentityBridge(repository).resolve(identity)

    assert user.first_name == "Alan"
    assert user.last_name == "Mathison Turing"


def test_authorization_url_carries_state_and_scopes(settings):
    url = GoogleOAuthClient(settings).authorization_url("xyz", "http://testserver/api/auth/google/callback")

    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert "state=xyz" in url
    assert "client_id=google-client-id" in url
    assert "scope=openid+email+profile" in url


@pytest.mark.asyncio
async def test_fetch_identity_reads_userinfo(google_client):
    identity = await google_client.fetch_identity("good-code", "http://testserver/cb")

    assert identity == GoogleIdentity(
        subject="google-sub-123",
        email="ada@example.com",
        given_name="Ada",
        family_name="Lovelace",
        display_name="Ada Lovelace",
    )


@pytest.mark.asyncio
async def test_fetch_identity_turns_google_errors_into_unauthorized(google_client):
    with pytest.raises(UnauthorizedError):
        await google_client.fetch_identity("bad-code", "http://testserver/cb")


@pytest.mark.asyncio
async def test_fetch_identity_network_failure_is_unauthorized(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = GoogleOAuthClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(UnauthorizedError):
        await client.fetch_identity("good-code", "http://testserver/cb")


def test_client_without_credentials_is_not_configured(settings):
    unconfigured = settings.model_copy(update={"GOOGLE_CLIENT_ID": "", "GOOGLE_CLIENT_SECRET": ""})

    assert GoogleOAuthClient(unconfigured).configured is False
