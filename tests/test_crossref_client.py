import httpx
import pytest

from neurostudy.clients.crossref_client import NO_ABSTRACT, CrossRefClient, clean_doi


def _client(handler) -> CrossRefClient:
    return CrossRefClient(
        base_url="https://crossref.test/works",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "raw",
    [
        "10.1038/nature12373",
        " doi:10.1038/nature12373 ",
        "https://doi.org/10.1038/nature12373",
        "http://dx.doi.org/10.1038/nature12373",
    ],
)
def test_clean_doi(raw):
    assert clean_doi(raw) == "10.1038/nature12373"


@pytest.mark.asyncio
async def test_lookup_returns_title_and_clean_abstract():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(
            200,
            json={
                "message": {
                    "title": ["Nanometre-scale thermometry"],
                    "abstract": "<jats:p>We measure heat.</jats:p>",
                }
            },
        )

    metadata = await _client(handler).lookup("doi:10.1038/nature12373")

    assert seen == ["https://crossref.test/works/10.1038/nature12373"]
    assert metadata == {"title": "Nanometre-scale thermometry", "abstract": "We measure heat."}


@pytest.mark.asyncio
async def test_lookup_without_abstract_uses_placeholder():
    def handler(request):
        return httpx.Response(200, json={"message": {"title": ["Only a title"]}})

    metadata = await _client(handler).lookup("10.1000/xyz")
    assert metadata["abstract"] == NO_ABSTRACT


@pytest.mark.asyncio
async def test_lookup_unknown_doi_returns_none():
    def handler(request):
        return httpx.Response(404, text="Resource not found.")

    assert await _client(handler).lookup("10.1000/missing") is None


@pytest.mark.asyncio
async def test_lookup_network_failure_returns_none():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    assert await _client(handler).lookup("10.1000/xyz") is None
