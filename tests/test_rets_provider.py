from datetime import datetime

import httpx
import pytest

from conftest import make_config
from mls_sync.adapters.clients.rets import RetsClient, parse_capabilities
from mls_sync.adapters.providers.rets import FULL_SYNC_QUERY, RetsProvider
from mls_sync.domain.errors import ProviderAuthError, ProviderNetworkError, ProviderNotConnectedError
from mls_sync.domain.types import ProviderCredentials, ProviderKind, SyncOptions, SyncType

LOGIN_URL = "https://rets.example.com/rets/login"

LOGIN_BODY = """<RETS ReplyCode="0" ReplyText="Operation Successful">
<RETS-RESPONSE>
MemberName=Test Agent
Search=/rets/search
GetMetadata=/rets/getmetadata
GetObject=/rets/getobject
Logout=/rets/logout
</RETS-RESPONSE>
</RETS>
"""

COLUMNS = "\t".join(
    [
        "",
        "ListingKey",
        "UnparsedAddress",
        "PostalCode",
        "StandardStatus",
        "ListPrice",
        "ModificationTimestamp",
        "ListingContractDate",
        "",
    ]
)


def _data(*values: str) -> str:
    return "<DATA>" + "\t".join(["", *values, ""]) + "</DATA>"


ROWS = [
    _data("R1", "12 Oak Ave, Tacoma, WA 98402", "", "Active", "$450,000", "2024-03-01T10:00:00", "01/15/2024"),
    _data("R2", "9 Elm St, Bellevue, WA", "98004", "Pending", "725000", "2024-02-01T00:00:00", ""),
    _data("R3", "1 Pine Rd, Redmond, WA 98052", "", "Closed", "610000", "2024-03-05T08:30:00", ""),
]


def _search_body(rows, *, count=None, max_rows=False) -> str:
    count_tag = f'<COUNT Records="{count if count is not None else len(rows)}" />'
    return (
        '<RETS ReplyCode="0" ReplyText="Success">'
        '<DELIMITER value="09" />'
        f"{count_tag}<COLUMNS>{COLUMNS}</COLUMNS>{''.join(rows)}"
        f"{'<MAXROWS />' if max_rows else ''}</RETS>"
    )


METADATA_BODY = (
    '<RETS ReplyCode="0" ReplyText="Success"><METADATA>'
    '<METADATA-CLASS Resource="Property" Version="1.0">'
    "<COLUMNS>\tClassName\tStandardName\tDescription\t</COLUMNS>"
    "<DATA>\tRE_1\tResidentialProperty\tResidential\t</DATA>"
    "</METADATA-CLASS></METADATA></RETS>"
)

MULTIPART_LOCATIONS = (
    "--simple\r\nContent-ID: R1\r\nObject-ID: 1\r\nLocation: https://photos.example.com/R1/1.jpg\r\n\r\n"
    "--simple\r\nContent-ID: R1\r\nObject-ID: 2\r\nLocation: https://photos.example.com/R1/2.jpg\r\n\r\n"
    "--simple--\r\n"
)


class FakeRetsServer:
    def __init__(self, *, pages=None, login_status=200, login_body=LOGIN_BODY):
        self.pages = pages if pages is not None else [_search_body(ROWS)]
        self.login_status = login_status
        self.login_body = login_body
        self.searches: list[dict[str, str]] = []
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(path)
        if path == "/rets/login":
            return httpx.Response(self.login_status, text=self.login_body)
        if path == "/rets/search":
            self.searches.append(dict(request.url.params))
            body = self.pages[min(len(self.searches), len(self.pages)) - 1]
            return httpx.Response(200, text=body)
        if path == "/rets/getmetadata":
            return httpx.Response(200, text=METADATA_BODY)
        if path == "/rets/getobject":
            return httpx.Response(
                200,
                headers={"Content-Type": "multipart/parallel; boundary=simple"},
                text=MULTIPART_LOCATIONS,
            )
        if path == "/rets/logout":
            return httpx.Response(200, text='<RETS ReplyCode="0" ReplyText="Goodbye" />')
        return httpx.Response(404)


def _provider(server: FakeRetsServer, **overrides) -> RetsProvider:
    config = make_config(
        "rets-test",
        provider_type=ProviderKind.rets,
        login_url=LOGIN_URL,
        credentials=ProviderCredentials(username="agent", password="secret"),
        batch_size=100,
        **overrides,
    )
    return RetsProvider(config, transport=httpx.MockTransport(server))


def test_parse_capabilities():
    caps = parse_capabilities(LOGIN_BODY)
    assert caps["Search"] == "/rets/search"
    assert caps["MemberName"] == "Test Agent"


@pytest.mark.asyncio
async def test_login_resolves_capability_urls():
    server = FakeRetsServer()
    client = RetsClient(login_url=LOGIN_URL, username="u", password="p", transport=httpx.MockTransport(server))

    caps = await client.login()

    assert caps["Search"] == "https://rets.example.com/rets/search"
    assert client.is_logged_in
    await client.logout()
    assert not client.is_logged_in
    assert server.paths[-1] == "/rets/logout"


@pytest.mark.asyncio
async def test_rejected_login_is_auth_error():
    server = FakeRetsServer(login_status=401, login_body="Unauthorized")
    provider = _provider(server)

    with pytest.raises(ProviderAuthError):
        await provider.connect()
    assert not provider.is_connected


@pytest.mark.asyncio
async def test_nonzero_reply_code_is_auth_error():
    server = FakeRetsServer(login_body='<RETS ReplyCode="20036" ReplyText="Invalid credentials" />')

    with pytest.raises(ProviderAuthError):
        await _provider(server).connect()


@pytest.mark.asyncio
async def test_search_error_reply_is_network_error():
    server = FakeRetsServer(pages=['<RETS ReplyCode="20203" ReplyText="Miscellaneous search error" />'])
    provider = _provider(server)
    await provider.connect()

    with pytest.raises(ProviderNetworkError):
        await provider.fetch_properties(SyncOptions(sync_type=SyncType.full))


@pytest.mark.asyncio
async def test_fetch_requires_connection():
    with pytest.raises(ProviderNotConnectedError):
        await _provider(FakeRetsServer()).fetch_properties(SyncOptions(sync_type=SyncType.full))


@pytest.mark.asyncio
async def test_full_fetch_decodes_compact_rows():
    server = FakeRetsServer()
    provider = _provider(server)
    await provider.connect()

    listings = await provider.fetch_properties(SyncOptions(sync_type=SyncType.full, batch_size=100))

    params = server.searches[0]
    assert params["Query"] == FULL_SYNC_QUERY
    assert params["Format"] == "COMPACT-DECODED"
    assert params["QueryType"] == "DMQL2"
    assert params["Limit"] == "100"

    r1 = listings[0]
    assert r1.external_id == "R1"
    assert (r1.address, r1.city, r1.state, r1.postal_code) == ("12 Oak Ave", "Tacoma", "WA", "98402")
    assert r1.price == 450000.0
    assert r1.status.value == "Active"
    assert r1.days_on_market is not None and r1.days_on_market > 0
    assert r1.media == []

    r2 = listings[1]
    assert (r2.city, r2.state, r2.postal_code) == ("Bellevue", "WA", "98004")
    assert listings[2].status.value == "Sold"

    await provider.disconnect()
    assert server.paths[-1] == "/rets/logout"


@pytest.mark.asyncio
async def test_incremental_query_and_strict_watermark():
    server = FakeRetsServer()
    provider = _provider(server)
    await provider.connect()

    since = datetime(2024, 3, 1, 10, 0, 0)
    listings = await provider.fetch_properties(SyncOptions(sync_type=SyncType.incremental, modified_since=since))

    assert server.searches[0]["Query"] == "(ModificationTimestamp=2024-03-01T10:00:00+)"
    # R1 sits exactly on the watermark, R2 is older
    assert [x.external_id for x in listings] == ["R3"]


@pytest.mark.asyncio
async def test_paging_follows_maxrows():
    pages = [_search_body(ROWS[:2], count=3, max_rows=True), _search_body(ROWS[2:], count=3)]
    server = FakeRetsServer(pages=pages)
    provider = _provider(server)
    await provider.connect()

    listings = await provider.fetch_properties(SyncOptions(sync_type=SyncType.full, batch_size=2, max_properties=10))

    assert [x.external_id for x in listings] == ["R1", "R2", "R3"]
    assert "Offset" not in server.searches[0]
    assert server.searches[1]["Offset"] == "3"


@pytest.mark.asyncio
async def test_media_comes_from_photo_locations():
    server = FakeRetsServer(pages=[_search_body(ROWS[:1])])
    provider = _provider(server)
    await provider.connect()

    listings = await provider.fetch_properties(SyncOptions(sync_type=SyncType.full, include_media=True))

    assert [m.url for m in listings[0].media] == [
        "https://photos.example.com/R1/1.jpg",
        "https://photos.example.com/R1/2.jpg",
    ]
    assert [m.order for m in listings[0].media] == [0, 1]


@pytest.mark.asyncio
async def test_metadata_and_health():
    provider = _provider(FakeRetsServer())
    assert not (await provider.health_check()).healthy

    await provider.connect()
    meta = await provider.get_metadata()
    assert meta.resource_classes == ["ResidentialProperty"]
    assert (await provider.health_check()).healthy
