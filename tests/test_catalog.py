import httpx
import pytest

from streamscout_app.catalog.models import MediaKind, ProviderSet, WatchProvidersResponse
from streamscout_app.catalog.tmdb import TMDBCatalogProvider
from streamscout_app.errors import MalformedPayloadError, UpstreamError

from conftest import NETFLIX, movie, person, providers_payload, tv


def make_provider(handler, **kwargs):
    options = dict(
        base_url='https://api.tmdb.test/3',
        retry_delay=0,
        rate_limit=60000,
        max_retries=3,
        transport=httpx.MockTransport(handler),
    )
    options.update(kwargs)
    return TMDBCatalogProvider('secret-key', **options)


def test_requires_api_key():
    with pytest.raises(ValueError):
        TMDBCatalogProvider('')


@pytest.mark.asyncio
async def test_search_multi_parses_results_and_sends_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={
            'page': 1,
            'results': [movie(11, 'Star Wars'), tv(1399, 'Game of Thrones'), person(5, 'Someone'), {'title': 'no id'}],
            'total_pages': 3,
            'total_results': 55,
        })

    provider = make_provider(handler)
    page = await provider.search_multi('  star wars ', 1)
    await provider.close()

    assert seen[0].url.path == '/3/search/multi'
    assert seen[0].url.params['api_key'] == 'secret-key'
    assert seen[0].url.params['query'] == 'star wars'
    assert page.total_pages == 3
    assert page.total_results == 55
    # row without an id is dropped, person kept for the pipeline to filter
    assert [item.id for item in page.results] == [11, 1399, 5]
    assert page.results[0].release_year == '2000'
    assert page.results[1].title == 'Game of Thrones'
    assert page.results[2].media_kind is None


@pytest.mark.asyncio
async def test_empty_query_rejected_without_request():
    calls = []
    provider = make_provider(lambda request: calls.append(request) or httpx.Response(200, json={}))

    with pytest.raises(UpstreamError) as exc:
        await provider.search_multi('   ')

    assert exc.value.status_code == 400
    assert exc.value.is_bad_request
    assert calls == []


@pytest.mark.asyncio
async def test_rate_limited_then_success():
    responses = [
        httpx.Response(429, headers={'Retry-After': '0'}),
        httpx.Response(200, json={'page': 1, 'results': [], 'total_pages': 0, 'total_results': 0}),
    ]

    def handler(request):
        return responses.pop(0)

    provider = make_provider(handler)
    page = await provider.search_multi('dune')
    await provider.close()

    assert page.results == []
    assert responses == []


@pytest.mark.asyncio
async def test_server_error_exhausts_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    provider = make_provider(handler)
    with pytest.raises(UpstreamError) as exc:
        await provider.search_multi('dune')
    await provider.close()

    assert exc.value.status_code == 503
    assert not exc.value.is_bad_request
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_not_found_is_not_retried_and_keeps_tmdb_message():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={
            'success': False,
            'status_code': 34,
            'status_message': 'The resource you requested could not be found.',
        })

    provider = make_provider(handler)
    with pytest.raises(UpstreamError) as exc:
        await provider.get_watch_providers(999999, MediaKind.MOVIE)
    await provider.close()

    assert len(calls) == 1
    assert exc.value.status_code == 404
    assert exc.value.message == 'The resource you requested could not be found.'


@pytest.mark.asyncio
async def test_timeout_maps_to_status_zero():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout('timed out', request=request)

    provider = make_provider(handler, max_retries=2)
    with pytest.raises(UpstreamError) as exc:
        await provider.search_multi('dune')
    await provider.close()

    assert exc.value.status_code == 0
    assert exc.value.is_timeout
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_network_error_maps_to_status_zero():
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    provider = make_provider(handler, max_retries=1)
    with pytest.raises(UpstreamError) as exc:
        await provider.search_multi('dune')
    await provider.close()

    assert exc.value.status_code == 0


@pytest.mark.asyncio
async def test_non_json_body_is_malformed():
    provider = make_provider(lambda request: httpx.Response(200, text='<html>maintenance</html>'))

    with pytest.raises(MalformedPayloadError):
        await provider.search_multi('dune')
    await provider.close()


@pytest.mark.asyncio
async def test_error_body_with_200_status():
    provider = make_provider(lambda request: httpx.Response(200, json={
        'success': False,
        'status_code': 7,
        'status_message': 'Invalid API key: You must be granted a valid key.',
    }))

    with pytest.raises(UpstreamError) as exc:
        await provider.search_multi('dune')
    await provider.close()

    assert 'Invalid API key' in exc.value.message
    assert not isinstance(exc.value, MalformedPayloadError)


@pytest.mark.asyncio
async def test_wrongly_shaped_search_payload():
    provider = make_provider(lambda request: httpx.Response(200, json={'results': 'nope'}))

    with pytest.raises(MalformedPayloadError):
        await provider.search_multi('dune')
    await provider.close()


@pytest.mark.asyncio
async def test_watch_providers_for_region():
    payload = providers_payload(1396, flatrate=[NETFLIX, {'provider_name': 'broken'}])
    provider = make_provider(lambda request: httpx.Response(200, json=payload))

    response = await provider.get_watch_providers(1396, MediaKind.SERIES)
    await provider.close()

    us = response.for_region('us')
    assert isinstance(us, ProviderSet)
    assert [p.provider_name for p in us.subscription] == ['Netflix']
    assert us.purchase == ()
    assert response.for_region('DE') is None


def test_watch_providers_without_results_map_is_malformed():
    with pytest.raises(MalformedPayloadError):
        WatchProvidersResponse.from_payload({'id': 1, 'results': []})


@pytest.mark.asyncio
async def test_popular_items_are_tagged_with_kind():
    def handler(request):
        assert request.url.path == '/3/tv/popular'
        return httpx.Response(200, json={'results': [{'id': 1, 'name': 'Severance', 'popularity': 88.5}]})

    provider = make_provider(handler)
    items = await provider.get_popular(MediaKind.SERIES, 1)
    await provider.close()

    assert len(items) == 1
    assert items[0].media_kind is MediaKind.SERIES
    assert items[0].popularity == 88.5


@pytest.mark.asyncio
async def test_external_ids():
    provider = make_provider(lambda request: httpx.Response(200, json={
        'id': 1396, 'imdb_id': 'tt0903747', 'tvdb_id': 81189, 'facebook_id': '',
    }))

    ids = await provider.get_external_ids(1396, MediaKind.SERIES)
    await provider.close()

    assert ids.imdb_id == 'tt0903747'
    assert ids.tvdb_id == 81189
    assert ids.facebook_id is None


def test_image_helpers():
    assert TMDBCatalogProvider.image_url('/abc.jpg', 'w500') == 'https://image.tmdb.org/t/p/w500/abc.jpg'
    assert TMDBCatalogProvider.image_url(None) is None
    assert TMDBCatalogProvider.provider_logo_url('/n.png') == 'https://image.tmdb.org/t/p/w92/n.png'
