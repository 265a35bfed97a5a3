"""Tests for data URL building and page fetching."""
import httpx

from carfinder.fetcher import Accepted, Outcome, PageFetcher, Skipped, build_data_url, coerce_ad

HUMAN_URL = "https://www.olx.com.br/autos-e-pecas/carros-vans-e-utilitarios/estado-rs?ps=20000&pe=35000"


def _fetcher(mock_client, handler):
    return PageFetcher(mock_client(handler))


def test_build_data_url_first_page():
    assert build_data_url(HUMAN_URL, "abc") == (
        "https://www.olx.com.br/_next/data/abc/autos-e-pecas/carros-vans-e-utilitarios/estado-rs.json"
        "?ps=20000&pe=35000"
    )


def test_build_data_url_adds_page_param():
    url = build_data_url(HUMAN_URL, "abc", page=3)
    assert url.endswith("estado-rs.json?ps=20000&pe=35000&sp=3")


def test_build_data_url_without_query():
    url = build_data_url("https://www.olx.com.br/autos-e-pecas", "b1", page=2)
    assert url == "https://www.olx.com.br/_next/data/b1/autos-e-pecas.json?sp=2"


def test_coerce_ad_tags_items():
    assert isinstance(coerce_ad({"listId": 1, "url": "/a"}), Accepted)
    assert isinstance(coerce_ad({"listId": 1}), Skipped)
    assert isinstance(coerce_ad({"url": "/a"}), Skipped)
    assert isinstance(coerce_ad({"listId": "", "url": "/a"}), Skipped)
    assert isinstance(coerce_ad("garbage"), Skipped)


def test_fetch_page_ok_drops_invalid_items(mock_client):
    body = {"pageProps": {"ads": [
        {"listId": 1, "url": "/a/1", "subject": "Honda Civic"},
        {"listId": 2, "subject": "no url"},
        {"url": "/a/3", "subject": "no id"},
        {"listId": 4, "url": "https://rs.olx.com.br/a/4"},
    ]}}
    fetcher = _fetcher(mock_client, lambda request: httpx.Response(200, json=body))

    result = fetcher.fetch_page("https://www.olx.com.br/_next/data/abc/x.json")

    assert result.outcome is Outcome.OK
    assert [ad.list_id for ad in result.ads] == ["1", "4"]
    assert result.first_list_id == "1"


def test_fetch_page_keeps_ads_with_odd_optional_fields(mock_client):
    body = {"pageProps": {"ads": [
        {"listId": 1, "url": "/a/1", "location": {"municipality": 123, "neighbourhood": ["x"]}},
        {"listId": 2, "url": "/a/2", "price": {"value": 45000}},
        {"listId": 3, "url": "/a/3", "properties": ["Modelo: Gol", {"label": "Modelo", "value": "Gol"}]},
        {"listId": 4, "url": "/a/4", "subject": ["Onix"], "location": "Porto Alegre"},
    ]}}
    fetcher = _fetcher(mock_client, lambda request: httpx.Response(200, json=body))

    ads = fetcher.fetch_page("https://www.olx.com.br/_next/data/abc/x.json").ads

    assert [ad.list_id for ad in ads] == ["1", "2", "3", "4"]
    assert ads[0].location.municipality == "123"
    assert ads[0].location.neighbourhood is None
    assert ads[1].price is None
    assert [(p.label, p.value) for p in ads[2].properties] == [("Modelo", "Gol")]
    assert ads[3].subject is None
    assert ads[3].location is None


def test_fetch_page_missing_ads_is_empty(mock_client):
    fetcher = _fetcher(mock_client, lambda request: httpx.Response(200, json={"pageProps": {}}))
    result = fetcher.fetch_page("https://www.olx.com.br/_next/data/abc/x.json")
    assert result.outcome is Outcome.OK
    assert result.ads == []


def test_fetch_page_404_is_not_found(mock_client):
    fetcher = _fetcher(mock_client, lambda request: httpx.Response(404))
    result = fetcher.fetch_page("https://www.olx.com.br/_next/data/old/x.json")
    assert result.outcome is Outcome.NOT_FOUND
    assert result.status == 404


def test_fetch_page_other_status(mock_client):
    fetcher = _fetcher(mock_client, lambda request: httpx.Response(503))
    result = fetcher.fetch_page("https://www.olx.com.br/_next/data/abc/x.json")
    assert result.outcome is Outcome.OTHER_ERROR
    assert result.status == 503


def test_fetch_page_transport_error_is_500(mock_client):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = _fetcher(mock_client, handler).fetch_page("https://www.olx.com.br/_next/data/abc/x.json")
    assert result.outcome is Outcome.OTHER_ERROR
    assert result.status == 500


def test_fetch_page_bad_json_is_500(mock_client):
    fetcher = _fetcher(mock_client, lambda request: httpx.Response(200, text="<html>captcha</html>"))
    result = fetcher.fetch_page("https://www.olx.com.br/_next/data/abc/x.json")
    assert result.outcome is Outcome.OTHER_ERROR
    assert result.status == 500


def test_fetch_page_sends_json_headers(mock_client):
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={})

    _fetcher(mock_client, handler).fetch_page("https://www.olx.com.br/_next/data/abc/x.json")
    assert seen["accept"] == "application/json"
    assert seen["referer"] == "https://www.olx.com.br"
    assert seen["user-agent"].startswith("Mozilla/5.0")
