"""
Growth Coach — HubSpot Contacts Client
Read-only access to the CRM v3 contacts endpoint.
Walks every page of contacts, trying each configured credential per page.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from config.settings import config
from config.errors import ConfigurationError
from crm.models import Contact

logger = logging.getLogger("coach.hubspot")

CONTACTS_PATH = "/crm/v3/objects/contacts"


class HubSpotFetchError(RuntimeError):
    """Pagination was cut off before HubSpot stopped returning cursors."""


@dataclass(frozen=True)
class AuthCandidate:
    """One way of authenticating a page request."""
    name: str
    headers: dict = field(default_factory=dict)
    params: dict = field(default_factory=dict)


def auth_candidates(access_token: Optional[str], api_key: Optional[str]) -> List[AuthCandidate]:
    """
    Ordered credentials to try for a single page:
    1. OAuth access token as bearer
    2. static API key as bearer (private app token)
    3. static API key as the legacy hapikey query parameter
    """
    candidates = []
    if access_token:
        candidates.append(AuthCandidate("oauth", headers={"Authorization": f"Bearer {access_token}"}))
    if api_key:
        candidates.append(AuthCandidate("bearer_key", headers={"Authorization": f"Bearer {api_key}"}))
        candidates.append(AuthCandidate("query_key", params={"hapikey": api_key}))
    return candidates


def _describe(error: httpx.HTTPError) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        return f"{error.response.status_code}: {error.response.text[:200]}"
    return f"{type(error).__name__}: {error}"


class HubSpotClient:
    """HubSpot contacts wrapper — paginated, credential-fallback fetch."""

    _instance = None

    @classmethod
    def _get_global_instance(cls):
        """Return the module-level singleton. Lazy-init if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self, api_key: str = None, base_url: str = None,
                 page_size: int = None, properties: List[str] = None,
                 max_pages: Optional[int] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._api_key = config.hubspot.api_key if api_key is None else api_key
        if not self._api_key:
            logger.warning("HUBSPOT_API_KEY not set — contact fetches need an OAuth access token")

        self._base_url = base_url or config.hubspot.base_url
        self._page_size = page_size or config.hubspot.page_size
        self._properties = list(properties or config.hubspot.contact_properties)
        self._max_pages = max_pages if max_pages is not None else config.hubspot.max_pages
        self._timeout = config.hubspot.timeout
        # Tests hand in an httpx.MockTransport; production uses the default pool
        self._transport = transport

    def _new_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
            transport=self._transport,
        )

    # -------------------------------------------------------
    # Single page
    # -------------------------------------------------------

    async def _fetch_page(self, http: httpx.AsyncClient, candidates: List[AuthCandidate],
                          after: Optional[str]) -> dict:
        """
        GET one page of contacts. Stops at the first credential that gets a 2xx.
        If every credential fails, raises the error from the last one tried.
        """
        params = {
            "limit": self._page_size,
            "properties": ",".join(self._properties),
        }
        if after:
            params["after"] = after

        last_error: Optional[httpx.HTTPError] = None
        for candidate in candidates:
            try:
                resp = await http.get(
                    CONTACTS_PATH,
                    params={**params, **candidate.params},
                    headers=candidate.headers,
                )
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(f"HubSpot contacts page via {candidate.name} failed — {_describe(e)}")

        logger.error(f"HubSpot contacts page failed on all {len(candidates)} credentials")
        raise last_error

    # -------------------------------------------------------
    # All pages
    # -------------------------------------------------------

    async def fetch_all_contacts(self, access_token: Optional[str] = None) -> List[Contact]:
        """
        Fetch every contact, following paging.next.after until HubSpot omits it.
        Pages are requested one at a time, so results keep HubSpot's order.
        Any page failure aborts the whole fetch; nothing partial is returned.
        """
        candidates = auth_candidates(access_token, self._api_key)
        if not candidates:
            raise ConfigurationError(
                "HubSpot API key not configured — connect HubSpot or set HUBSPOT_API_KEY"
            )

        contacts: List[Contact] = []
        after: Optional[str] = None
        pages = 0

        async with self._new_http_client() as http:
            while True:
                if self._max_pages is not None and pages >= self._max_pages:
                    raise HubSpotFetchError(
                        f"HubSpot still paginating after {pages} pages (HUBSPOT_MAX_PAGES)"
                    )

                data = await self._fetch_page(http, candidates, after)
                pages += 1
                batch = data.get("results") or []
                contacts.extend(Contact.from_api(record) for record in batch)

                after = ((data.get("paging") or {}).get("next") or {}).get("after")
                if not after:
                    break

        logger.info(f"HubSpot: fetched {len(contacts)} contacts in {pages} page(s)")
        return contacts
