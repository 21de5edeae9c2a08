import asyncio
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from dotenv import load_dotenv

from errors import CollaboratorFailure

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

CTP_PROJECT_KEY = os.getenv("CTP_PROJECT_KEY", "")
CTP_API_URL = os.getenv("CTP_API_URL", "https://api.australia-southeast1.gcp.commercetools.com")
CTP_AUTH_URL = os.getenv("CTP_AUTH_URL", "https://auth.australia-southeast1.gcp.commercetools.com")
CTP_CLIENT_ID = os.getenv("CTP_CLIENT_ID", "")
CTP_CLIENT_SECRET = os.getenv("CTP_CLIENT_SECRET", "")
CTP_SCOPES = os.getenv("CTP_SCOPES", "")
CTP_TIMEOUT_SECONDS = float(os.getenv("CTP_TIMEOUT_SECONDS", "30"))

# Refresh the token this many seconds before the platform says it expires
TOKEN_EXPIRY_BUFFER = 60

QueryParams = Union[Dict[str, Any], List[Tuple[str, Any]]]


def id_in(ids) -> str:
    """Build a `where` predicate selecting resources by id."""
    return "id in (" + ", ".join(f'"{i}"' for i in ids) + ")"


class CommercetoolsClient:
    """Minimal async HTTP client for the commercetools platform API.

    Uses the client-credentials flow and keeps the access token until shortly
    before it expires. Every failure surfaces as CollaboratorFailure.
    """

    def __init__(
        self,
        project_key: str,
        api_url: str,
        auth_url: str,
        client_id: str,
        client_secret: str,
        scope: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.project_key = project_key
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_env(cls) -> "CommercetoolsClient":
        return cls(
            project_key=CTP_PROJECT_KEY,
            api_url=CTP_API_URL,
            auth_url=CTP_AUTH_URL,
            client_id=CTP_CLIENT_ID,
            client_secret=CTP_CLIENT_SECRET,
            scope=CTP_SCOPES,
            timeout=CTP_TIMEOUT_SECONDS,
        )

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            data = {"grant_type": "client_credentials"}
            if self.scope:
                data["scope"] = self.scope
            try:
                resp = await self._http.post(
                    f"{self.auth_url}/oauth/token",
                    data=data,
                    auth=(self.client_id, self.client_secret),
                )
            except httpx.HTTPError as e:
                logger.error("Error getting access token: %s", e)
                raise CollaboratorFailure(f"Authentication request failed: {e}") from e
            if resp.status_code != 200:
                logger.error("Authentication failed: %s", resp.status_code)
                raise CollaboratorFailure(
                    f"Authentication failed: {resp.status_code}", status_code=resp.status_code
                )

            body = resp.json()
            self._token = body["access_token"]
            self._token_expires_at = (
                time.monotonic() + body.get("expires_in", 0) - TOKEN_EXPIRY_BUFFER
            )
            return self._token

    async def get(self, path: str, params: Optional[QueryParams] = None) -> Dict[str, Any]:
        """GET a project-scoped endpoint and return the decoded JSON body."""
        token = await self._access_token()
        url = f"{self.api_url}/{self.project_key}{path}"
        try:
            resp = await self._http.get(
                url, params=params, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            logger.error("API request to %s failed: %s", path, e)
            raise CollaboratorFailure(f"API request failed: {e}") from e

        if resp.is_error:
            logger.error("API request failed: %s - %s", resp.status_code, resp.text)
            raise CollaboratorFailure(
                f"API request failed: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise CollaboratorFailure("Unexpected API response format") from e

    async def query(self, path: str, params: Optional[QueryParams] = None) -> List[Dict[str, Any]]:
        """GET a paged query endpoint and return its `results`."""
        body = await self.get(path, params)
        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            raise CollaboratorFailure("Unexpected API response format")
        return results

    async def aclose(self) -> None:
        await self._http.aclose()


# 🛒 Utility to fetch a raw cart by ID
async def fetch_cart(client: CommercetoolsClient, cart_id: str) -> Dict[str, Any]:
    return await client.get(f"/carts/{cart_id}")
