"""
Growth Coach — HubSpot OAuth2 authorization-code flow.
Builds the consent URL and exchanges the callback code for an access token.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from config.settings import config
from config.errors import ConfigurationError

logger = logging.getLogger("coach.hubspot.oauth")


@dataclass
class TokenGrant:
    """Token endpoint response."""
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    token_type: str = "bearer"


def build_authorize_url(client_id: str = None, redirect_uri: str = None, scope: str = None) -> str:
    """URL the browser is redirected to for the HubSpot consent screen."""
    client_id = client_id or config.hubspot.client_id
    if not client_id:
        raise ConfigurationError("HubSpot Client ID not configured")

    query = urlencode({
        "client_id": client_id,
        "redirect_uri": redirect_uri or config.app.hubspot_redirect_uri,
        "scope": scope or config.hubspot.scope,
    })
    return f"{config.hubspot.authorize_url}?{query}"


async def exchange_code(code: str, redirect_uri: str = None,
                        client_id: str = None, client_secret: str = None,
                        transport: Optional[httpx.AsyncBaseTransport] = None) -> TokenGrant:
    """
    POST grant_type=authorization_code to the token endpoint.
    Raises httpx.HTTPStatusError when HubSpot rejects the code.
    """
    client_id = client_id or config.hubspot.client_id
    client_secret = client_secret or config.hubspot.client_secret
    if not client_id or not client_secret:
        raise ConfigurationError("HubSpot OAuth client credentials not configured")

    async with httpx.AsyncClient(timeout=config.hubspot.timeout, transport=transport) as client:
        resp = await client.post(
            config.hubspot.token_url,
            data={
                "grant_type": "authorization_code",
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri or config.app.hubspot_redirect_uri,
                "code": code,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    if resp.status_code >= 400:
        logger.error(f"HubSpot token exchange failed ({resp.status_code}): {resp.text[:200]}")
    resp.raise_for_status()

    data = resp.json()
    logger.info("HubSpot access token obtained")
    return TokenGrant(
        access_token=data["access_token"],
        expires_in=int(data.get("expires_in", 1800)),
        refresh_token=data.get("refresh_token"),
        token_type=data.get("token_type", "bearer"),
    )
