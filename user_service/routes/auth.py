import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from user_service.auth.dependencies import get_current_user, get_token_service, get_user_repository
from user_service.auth.google import GoogleOAuthClient
from user_service.auth.jwt import TokenService
from user_service.config import Settings
from user_service.errors import InvalidTokenError, ServiceUnavailableError, UnauthorizedError
from user_service.schemas import TokenVerifyRequest, UserRead, user_with_links
from user_service.services.oauth_bridge import OAuthIdentityBridge
from user_service.services.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

OAUTH_STATE_KEY = "google_oauth_state"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_google_client(request: Request) -> GoogleOAuthClient:
    client: GoogleOAuthClient = request.app.state.google_client
    if not client.configured:
        raise ServiceUnavailableError("Google OAuth is not configured", error="oauth_not_configured")
    return client


@router.get("/google", status_code=status.HTTP_302_FOUND)
async def google_login(
    request: Request,
    google: GoogleOAuthClient = Depends(get_google_client),
    settings: Settings = Depends(get_app_settings),
):
    """Redirect to the Google consent screen"""
    state = secrets.token_urlsafe(24)
    request.session[OAUTH_STATE_KEY] = state
    return RedirectResponse(
        google.authorization_url(state, settings.google_redirect_uri),
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    google: GoogleOAuthClient = Depends(get_google_client),
    settings: Settings = Depends(get_app_settings),
    repository: UserRepository = Depends(get_user_repository),
    tokens: TokenService = Depends(get_token_service),
):
    """Finish the Google login and hand back a bearer token"""
    expected_state = request.session.pop(OAUTH_STATE_KEY, None)
    if error or not code:
        logger.info("Google OAuth callback without code (error=%s)", error)
        raise UnauthorizedError("Google OAuth authentication was unsuccessful. Please try again.")
    if not state or not expected_state or not secrets.compare_digest(state, expected_state):
        logger.warning("Google OAuth callback with mismatching state")
        raise UnauthorizedError("OAuth state mismatch. Please start the login again.")

    identity = await google.fetch_identity(code, settings.google_redirect_uri)
    user = await OAuthIdentityBridge(repository).resolve(identity)
    token = tokens.issue(user)
    logger.info("User %s authenticated with Google", user.id)

    return {
        "success": True,
        "message": "Authentication successful",
        "token": token,
        "user": {
            "id": user.id,
            "email": user.email,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "role": user.role.value,
            "status": user.status.value,
        },
    }


@router.get("/failure", status_code=status.HTTP_401_UNAUTHORIZED)
async def oauth_failure():
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={
            "success": False,
            "error": "unauthorized",
            "message": "Google OAuth authentication was unsuccessful. Please try again.",
        },
    )


@router.get("/me")
async def me(current_user: UserRead = Depends(get_current_user)):
    """Return the authenticated user's profile"""
    return {"success": True, "user": user_with_links(current_user)}


@router.post("/verify")
async def verify(
    payload: Optional[TokenVerifyRequest] = None,
    tokens: TokenService = Depends(get_token_service),
):
    """Check whether a token is valid and return its claims"""
    if payload is None or not payload.token:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": "validation_error",
                "message": "Please provide a token in the request body",
            },
        )

    try:
        decoded = tokens.verify(payload.token)
    except InvalidTokenError as exc:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={
                "success": False,
                "valid": False,
                "error": exc.error,
                "message": exc.message,
            },
        )

    return {"success": True, "valid": True, "decoded": decoded}


@router.post("/logout")
async def logout(current_user: UserRead = Depends(get_current_user)):
    """JWTs are stateless: the client discards its token"""
    return {
        "success": True,
        "message": "Logout successful. Please remove the token from client storage.",
    }
