"""Google OAuth 2.0 authorization-code client."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx

from core import Settings

from .identity_resolution import ExternalProfile

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_SCOPES = ("openid", "profile", "email")


class OAuthError(Exception):
    """The provider rejected the exchange or returned an unusable profile."""


class OAuthProvider(Protocol):
    def authorization_url(self, state: str) -> str: ...

    async def fetch_profile(self, code: str) -> ExternalProfile: ...


def profile_from_userinfo(data: dict[str, Any]) -> ExternalProfile:
    """Map an OpenID Connect userinfo document to an ``ExternalProfile``."""
    subject = data.get("sub")
    if not isinstance(subject, str) or not subject:
        raise OAuthError("Provider profile has no subject")

    emails: list[str] = []
    email = data.get("email")
    if isinstance(email, str) and email.strip():
        emails.append(email)

    display_name = data.get("name")
    if not isinstance(display_name, str) or not display_name.strip():
        given = data.get("given_name") or ""
        family = data.get("family_name") or ""
        display_name = f"{given} {family}".strip() or None

    picture = data.get("picture")
    return ExternalProfile(
        external_id=subject,
        emails=tuple(emails),
        display_name=display_name,
        avatar_url=picture if isinstance(picture, str) and picture else None,
    )


class GoogleOAuthClient:
    """Talks to Google's OAuth endpoints with a short-lived httpx client."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleOAuthClient":
        return cls(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_callback_url,
        )

    def authorization_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.callback_url,
                "response_type": "code",
                "scope": " ".join(GOOGLE_SCOPES),
                "state": state,
                "prompt": "select_account",
            }
        )
        return f"{GOOGLE_AUTHORIZE_URL}?{query}"

    async def fetch_profile(self, code: str) -> ExternalProfile:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                token_response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.callback_url,
                        "grant_type": "authorization_code",
                    },
                )
                token_response.raise_for_status()
                access_token = token_response.json().get("access_token")
                if not access_token:
                    raise OAuthError("Provider did not return an access token")

                userinfo_response = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                userinfo_response.raise_for_status()
            except httpx.HTTPError as exc:
                raise OAuthError(f"Google OAuth request failed: {exc}") from exc

        return profile_from_userinfo(userinfo_response.json())
