# mls_sync/adapters/clients/rets.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from bs4 import BeautifulSoup

from ...config import settings
from ...domain.errors import ProviderAuthError, ProviderNetworkError, ProviderNotConnectedError
from .http_resilience import build_timeout, http_verify, resilient_request

log = logging.getLogger(__name__)

NO_RECORDS_FOUND = 20201

# capabilities whose values are URLs, possibly relative to the login URL
_URL_CAPS = {"Search", "GetMetadata", "GetObject", "Logout", "Login", "Action", "ChangePassword", "Update"}


@dataclass
class RetsSearchPage:
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None
    max_rows: bool = False


def _reply(soup: BeautifulSoup) -> tuple[int, str]:
    node = soup.find("RETS")
    if node is None:
        raise ProviderNetworkError("RETS response has no RETS element")
    try:
        code = int(node.get("ReplyCode", "0"))
    except ValueError:
        code = -1
    return code, str(node.get("ReplyText", ""))


def parse_compact(parent: Any, delimiter: str = "\t") -> list[dict[str, Any]]:
    """
    COMPACT / COMPACT-DECODED body: one COLUMNS row and N DATA rows, each
    wrapped in the delimiter on both ends.
    """
    cols_node = parent.find("COLUMNS")
    if cols_node is None:
        return []
    columns = cols_node.get_text().split(delimiter)[1:-1]

    rows: list[dict[str, Any]] = []
    for data in parent.find_all("DATA"):
        values = data.get_text().split(delimiter)[1:-1]
        rows.append({c: (values[i] if i < len(values) else "") for i, c in enumerate(columns)})
    return rows


def parse_capabilities(body: str) -> dict[str, str]:
    """
    Login RETS-RESPONSE block: `Key=Value` per line (Search=, GetMetadata=, ...).
    """
    soup = BeautifulSoup(body, "xml")
    block = soup.find("RETS-RESPONSE")
    text = block.get_text() if block is not None else body

    caps: dict[str, str] = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        if k:
            caps[k] = v.strip()
    return caps


def _parse_locations(resp: httpx.Response) -> list[str]:
    """
    GetObject with Location=1 answers with Location headers instead of bytes:
    a single part, or multipart/parallel with one header block per object.
    """
    ctype = resp.headers.get("content-type", "")
    if "multipart" not in ctype:
        loc = resp.headers.get("location")
        return [loc] if loc else []

    boundary = None
    for part in ctype.split(";"):
        part = part.strip()
        if part.lower().startswith("boundary="):
            boundary = part.split("=", 1)[1].strip('"')
    if not boundary:
        return []

    out: list[str] = []
    for chunk in resp.text.split(f"--{boundary}"):
        for line in chunk.strip().splitlines():
            if not line.strip():
                break  # end of this part's headers
            name, _, value = line.partition(":")
            if name.strip().lower() == "location" and value.strip():
                out.append(value.strip())
    return out


class RetsClient:
    """
    Minimal RETS 1.7.2 session client: digest login, search, metadata,
    photo locations, logout. Transport is injectable for tests.
    """

    def __init__(
        self,
        *,
        login_url: str,
        username: str,
        password: str,
        user_agent: str | None = None,
        rets_version: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.login_url = login_url
        self.headers = {
            "User-Agent": user_agent or settings.MLS_USER_AGENT,
            "RETS-Version": rets_version or settings.MLS_RETS_VERSION,
            "Accept": "*/*",
        }
        self._auth = httpx.DigestAuth(username, password)
        self._timeout = build_timeout(timeout_s)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.capabilities: dict[str, str] = {}

    @property
    def is_logged_in(self) -> bool:
        return self._client is not None and bool(self.capabilities)

    async def login(self) -> dict[str, str]:
        kwargs: dict[str, Any] = {}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        else:
            kwargs["verify"] = http_verify()

        self._client = httpx.AsyncClient(
            auth=self._auth,
            headers=self.headers,
            timeout=self._timeout,
            follow_redirects=True,
            **kwargs,
        )
        try:
            resp = await self._request("GET", self.login_url)
            soup = BeautifulSoup(resp.text, "xml")
            code, text = _reply(soup)
            if code != 0:
                raise ProviderAuthError(f"RETS login rejected ({code}): {text}")

            base = httpx.URL(self.login_url)
            self.capabilities = {
                k: str(base.join(v)) if k in _URL_CAPS else v for k, v in parse_capabilities(resp.text).items()
            }
        except BaseException:
            await self.aclose()
            raise

        if "Search" not in self.capabilities:
            await self.aclose()
            raise ProviderNetworkError("RETS login response did not advertise a Search capability")
        return self.capabilities

    async def search(
        self,
        *,
        search_type: str = "Property",
        search_class: str,
        query: str,
        limit: int | None = None,
        offset: int | None = None,
        select: list[str] | None = None,
    ) -> RetsSearchPage:
        params: dict[str, Any] = {
            "SearchType": search_type,
            "Class": search_class,
            "Query": query,
            "QueryType": "DMQL2",
            "Format": "COMPACT-DECODED",
            "Count": "1",
            "StandardNames": "0",
        }
        if limit:
            params["Limit"] = str(limit)
        if offset:
            params["Offset"] = str(offset)
        if select:
            params["Select"] = ",".join(select)

        resp = await self._request("GET", self._capability("Search"), params=params)
        soup = BeautifulSoup(resp.text, "xml")
        code, text = _reply(soup)
        if code == NO_RECORDS_FOUND:
            return RetsSearchPage(rows=[], count=0)
        if code != 0:
            raise ProviderNetworkError(f"RETS search failed ({code}): {text}")

        delim_node = soup.find("DELIMITER")
        delimiter = "\t"
        if delim_node is not None and delim_node.get("value"):
            delimiter = chr(int(delim_node["value"], 16))

        count_node = soup.find("COUNT")
        count = int(count_node["Records"]) if count_node is not None and count_node.get("Records") else None

        return RetsSearchPage(
            rows=parse_compact(soup, delimiter),
            count=count,
            max_rows=soup.find("MAXROWS") is not None,
        )

    async def get_metadata_classes(self, resource: str = "Property") -> list[dict[str, Any]]:
        params = {"Type": "METADATA-CLASS", "ID": resource, "Format": "COMPACT"}
        resp = await self._request("GET", self._capability("GetMetadata"), params=params)
        soup = BeautifulSoup(resp.text, "xml")
        code, text = _reply(soup)
        if code != 0:
            raise ProviderNetworkError(f"RETS metadata failed ({code}): {text}")

        block = soup.find("METADATA-CLASS")
        return parse_compact(block) if block is not None else []

    async def get_photo_locations(self, listing_id: str, resource: str = "Property") -> list[str]:
        if "GetObject" not in self.capabilities:
            return []
        params = {"Resource": resource, "Type": "Photo", "ID": f"{listing_id}:*", "Location": "1"}
        resp = await self._request("GET", self._capability("GetObject"), params=params)
        return _parse_locations(resp)

    async def logout(self) -> None:
        if self._client is None:
            return
        try:
            if "Logout" in self.capabilities:
                await self._request("GET", self.capabilities["Logout"])
        except (ProviderAuthError, ProviderNetworkError) as e:
            log.warning("RETS logout failed: %s", e)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self.capabilities = {}

    # -------------------------
    # Internals
    # -------------------------

    def _capability(self, name: str) -> str:
        if self._client is None:
            raise ProviderNotConnectedError("RETS session is not logged in")
        url = self.capabilities.get(name)
        if not url:
            raise ProviderNetworkError(f"RETS server does not advertise {name}")
        return url

    async def _request(self, method: str, url: str, *, params: dict[str, Any] | None = None) -> httpx.Response:
        if self._client is None:
            raise ProviderNotConnectedError("RETS session is not logged in")
        try:
            return await resilient_request(self._client, method, url, params=params)
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                raise ProviderAuthError(f"RETS authentication failed ({e.response.status_code})") from e
            raise ProviderNetworkError(f"RETS {url} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderNetworkError(f"RETS request to {url} failed: {e}") from e


