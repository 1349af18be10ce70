import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from user_service.config import Settings
from user_service.errors import UnauthorizedError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SCOPES = "openid email profile"


@dataclass(frozen=True)
class GoogleIdentity:
    """A Google-verified identity as reported by the userinfo endpoint."""

    subject: str
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def first_name(self) -> str:
        if self.given_name:
            return self.given_name
        return (self.display_name or "").split(" ")[0]

    @property
    def last_name(self) -> str:
        if self.family_name:
            return self.family_name
        return " ".join((self.display_name or "").split(" ")[1:])

    @classmethod
    def from_userinfo(cls, data: dict) -> "GoogleIdentity":
        return cls(
            subject=str(data.get("sub") or data.get("id") or ""),
            email=data.get("email"),
            given_name=data.get("given_name"),
            family_name=data.get("family_name"),
            display_name=data.get("name"),
        )


class GoogleOAuthClient:
    """Authorization-code flow against Google's OAuth 2.0 endpoints."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": SCOPES,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def fetch_identity(self, code: str, redirect_uri: str) -> GoogleIdentity:
        if self._http_client is not None:
            return await self._fetch_identity(self._http_client, code, redirect_uri)
        async with httpx.AsyncClient(timeout=10.0) as client:
            return await self._fetch_identity(client, code, redirect_uri)

    async def _fetch_identity(self, client: httpx.AsyncClient, code: str, redirect_uri: str) -> GoogleIdentity:
        try:
            token_response = await client.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_response.raise_for_status()
            access_token = token_response.json().get("access_token")
            if not access_token:
                raise UnauthorizedError("Google did not return an access token")

            userinfo_response = await client.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            userinfo_response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Google OAuth request failed: %s %s", exc.response.status_code, exc.request.url)
            raise UnauthorizedError("Google OAuth authentication was unsuccessful") from exc
        except httpx.HTTPError as exc:
            logger.warning("Google OAuth request error: %s", exc)
            raise UnauthorizedError("Could not reach Google to complete authentication") from exc

        identity = GoogleIdentity.from_userinfo(userinfo_response.json())
        if not identity.subject:
            raise UnauthorizedError("Google profile is missing a subject id")
        return identity
