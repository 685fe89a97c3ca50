import pytest

from streamscout_app.catalog.models import MediaKind
from streamscout_app.errors import UpstreamError, ValidationError
from streamscout_app.search.pipeline import sanitize_query

from conftest import NETFLIX, movie, person, providers_payload, tv


STAR_WARS_EXPANSION = ['andor', 'the mandalorian', 'obi-wan kenobi', 'the book of boba fett', 'ahsoka']


@pytest.fixture
def star_wars_catalog(catalog):
    catalog.search_results['star wars'] = [
        movie(11, 'Star Wars', popularity=90),
        movie(1891, 'The Empire Strikes Back', popularity=60),
        person(2, 'Mark Hamill'),
    ]
    catalog.search_results['andor'] = [tv(83867, 'Andor'), movie(11, 'Star Wars')]
    catalog.search_results['the mandalorian'] = [tv(82856, 'The Mandalorian')]
    return catalog


# =============================================================================
# VALIDATION
# =============================================================================

def test_sanitize_query():
    assert sanitize_query('  the office\x00\n ') == 'the office'
    assert sanitize_query(None) == ''


@pytest.mark.parametrize('query', ['', '   ', None, 'x' * 201])
@pytest.mark.asyncio
async def test_invalid_query_raises(pipeline, catalog, query):
    with pytest.raises(ValidationError) as exc:
        await pipeline.search(query)
    assert exc.value.field == 'query'
    assert catalog.search_calls() == []


@pytest.mark.parametrize('page', [0, -1, 501, '2', 1.5, True])
@pytest.mark.asyncio
async def test_invalid_page_raises(pipeline, page):
    with pytest.raises(ValidationError) as exc:
        await pipeline.search('dune', page=page)
    assert exc.value.field == 'page'


# =============================================================================
# SEARCH
# =============================================================================

@pytest.mark.asyncio
async def test_only_movies_and_series_are_returned(pipeline, catalog):
    catalog.search_results['dune'] = [
        movie(438631, 'Dune'), person(1, 'Frank Herbert'), tv(90228, 'Dune: Prophecy'), movie(438631, 'Dune'),
    ]

    result = await pipeline.search('dune')

    assert [(i.media_type, i.id) for i in result.results] == [('movie', 438631), ('tv', 90228)]
    assert result.suggestion is None
    assert result.did_auto_correct is False
    assert result.from_cache is False


@pytest.mark.asyncio
async def test_typo_is_auto_corrected(pipeline, office_catalog):
    result = await pipeline.search('the ofice')

    assert result.did_auto_correct is True
    assert result.original_query == 'the ofice'
    assert result.suggestion.suggested_title == 'The Office'
    assert result.suggestion.confidence > 0.9
    assert len(result.results) == 3
    assert result.results[0].id == 2316
    assert office_catalog.search_calls() == ['the ofice', 'the office']

    data = result.to_dict()
    assert data['didAutoCorrect'] is True
    assert data['originalQuery'] == 'the ofice'
    assert data['suggestion']['suggestion'] == 'The Office'


@pytest.mark.asyncio
async def test_typo_suggested_but_not_applied_without_autocorrect(pipeline, office_catalog):
    result = await pipeline.search('the ofice', auto_correct=False)

    assert result.did_auto_correct is False
    assert result.suggestion.suggested_title == 'The Office'
    assert result.results == []
    assert office_catalog.search_calls() == ['the ofice']


@pytest.mark.asyncio
async def test_corrected_search_kept_only_when_it_finds_more(pipeline, catalog):
    catalog.search_results['breakng bad'] = [tv(1396, 'Breaking Bad')]
    catalog.search_results['breaking bad'] = [tv(1396, 'Breaking Bad')]

    result = await pipeline.search('breakng bad')

    assert result.did_auto_correct is False
    assert result.suggestion.suggested_title == 'Breaking Bad'
    assert [i.id for i in result.results] == [1396]
    assert catalog.search_calls() == ['breakng bad', 'breaking bad']


@pytest.mark.asyncio
async def test_enough_results_skip_suggestions(pipeline, office_catalog):
    office_catalog.search_results['the ofice'] = office_catalog.search_results['the office']

    result = await pipeline.search('the ofice')

    assert result.suggestion is None
    assert office_catalog.search_calls() == ['the ofice']


@pytest.mark.asyncio
async def test_franchise_expansion(pipeline, star_wars_catalog):
    result = await pipeline.search('Star Wars')

    assert result.detected_franchise == 'star wars'
    assert star_wars_catalog.search_calls() == ['star wars'] + STAR_WARS_EXPANSION
    assert [(i.media_type, i.id) for i in result.results] == [
        ('movie', 11), ('movie', 1891), ('tv', 83867), ('tv', 82856),
    ]
    assert result.to_dict()['detectedFranchise'] == 'star wars'


@pytest.mark.asyncio
async def test_franchise_expansion_survives_failed_searches(pipeline, star_wars_catalog):
    star_wars_catalog.errors[('search', 'andor')] = UpstreamError('boom', 500)

    result = await pipeline.search('star wars')

    assert [i.id for i in result.results] == [11, 1891, 82856]


@pytest.mark.asyncio
async def test_no_franchise_expansion_after_page_one(pipeline, star_wars_catalog):
    result = await pipeline.search('star wars', page=2)

    assert result.detected_franchise is None
    assert star_wars_catalog.search_calls() == ['star wars']


@pytest.mark.asyncio
async def test_upstream_failure_degrades(pipeline, catalog):
    catalog.errors[('search', 'dune')] = UpstreamError('service unavailable', 503)

    result = await pipeline.search('dune')

    assert result.degraded is True
    assert result.results == []
    assert pipeline.cache.stats()['writes'] == 0


@pytest.mark.asyncio
async def test_upstream_timeout_degrades(pipeline, catalog):
    pipeline.request_timeout = 0.05
    catalog.delays[('search', 'dune')] = 1.0

    result = await pipeline.search('dune')

    assert result.degraded is True


@pytest.mark.asyncio
async def test_upstream_rejection_is_a_validation_error(pipeline, catalog):
    catalog.errors[('search', 'dune')] = UpstreamError('Invalid page', 422)

    with pytest.raises(ValidationError):
        await pipeline.search('dune')


@pytest.mark.asyncio
@pytest.mark.parametrize('status', [401, 403, 404, 429])
async def test_upstream_auth_and_lookup_failures_degrade(pipeline, catalog, status):
    catalog.errors[('search', 'breaking bad')] = UpstreamError(
        'Invalid API key: You must be granted a valid key.', status,
    )

    result = await pipeline.search('breaking bad')

    assert result.degraded is True
    assert result.results == []


@pytest.mark.asyncio
async def test_failed_primary_search_still_suggests_and_corrects(pipeline, office_catalog):
    office_catalog.errors[('search', 'the ofice')] = UpstreamError('down', 503)

    result = await pipeline.search('the ofice')

    assert result.degraded is True
    assert result.suggestion.suggested_title == 'The Office'
    assert result.did_auto_correct is True
    assert result.results[0].id == 2316
    assert office_catalog.search_calls() == ['the ofice', 'the office']
    assert pipeline.cache.stats()['writes'] == 0


@pytest.mark.asyncio
async def test_failed_primary_search_still_expands_franchise(pipeline, star_wars_catalog):
    star_wars_catalog.errors[('search', 'star wars')] = UpstreamError('down', 503)

    result = await pipeline.search('star wars')

    assert result.degraded is True
    assert result.detected_franchise == 'star wars'
    assert [i.id for i in result.results] == [83867, 11, 82856]
    assert pipeline.cache.stats()['writes'] == 0


@pytest.mark.asyncio
async def test_suggestions_degrade_when_corpus_unavailable(pipeline, catalog):
    catalog.errors[('popular', '*')] = UpstreamError('down', 0)
    pipeline.suggestions.index.corpus.curated = ()

    result = await pipeline.search('the ofice')

    assert result.suggestion is None
    assert result.results == []


# =============================================================================
# CACHING
# =============================================================================

@pytest.mark.asyncio
async def test_results_are_cached_by_normalized_query(pipeline, star_wars_catalog):
    first = await pipeline.search('Star Wars ')
    second = await pipeline.search('  star   wars')

    assert first.from_cache is False
    assert second.from_cache is True
    assert [i.id for i in second.results] == [i.id for i in first.results]
    assert second.detected_franchise == 'star wars'
    assert star_wars_catalog.search_calls().count('star wars') == 1


@pytest.mark.asyncio
async def test_cache_is_per_page_and_region(pipeline, star_wars_catalog):
    await pipeline.search('star wars')
    await pipeline.search('star wars', region='GB')

    assert star_wars_catalog.search_calls().count('star wars') == 2


@pytest.mark.asyncio
async def test_empty_results_are_not_cached(pipeline, catalog):
    await pipeline.search('qwxzvbnmplk')
    await pipeline.search('qwxzvbnmplk')

    assert catalog.search_calls() == ['qwxzvbnmplk', 'qwxzvbnmplk']


@pytest.mark.asyncio
async def test_use_cache_false_bypasses_cache(pipeline, star_wars_catalog):
    await pipeline.search('star wars')
    result = await pipeline.search('star wars', use_cache=False)

    assert result.from_cache is False
    assert star_wars_catalog.search_calls().count('star wars') == 2


@pytest.mark.asyncio
async def test_corrected_result_is_cached_under_the_original_query(pipeline, office_catalog):
    await pipeline.search('the ofice')
    cached = await pipeline.search('The Ofice')

    assert cached.from_cache is True
    assert cached.did_auto_correct is True
    assert office_catalog.search_calls() == ['the ofice', 'the office']


# =============================================================================
# AVAILABILITY / EXTERNAL IDS
# =============================================================================

@pytest.mark.asyncio
async def test_search_results_feed_availability(pipeline, star_wars_catalog):
    star_wars_catalog.provider_payloads[('movie', 11)] = providers_payload(11, flatrate=[NETFLIX])
    result = await pipeline.search('star wars')

    snapshots = [s async for s in pipeline.resolve_availability(result.availability_items())]

    assert len(snapshots) == 1
    final = snapshots[0].records
    assert final[('movie', 11)].providers.subscription[0].provider_name == 'Netflix'
    assert final[('tv', 83867)].providers is None


@pytest.mark.asyncio
async def test_resolve_availability_batch(pipeline):
    chunks = []
    final = await pipeline.resolve_availability_batch(
        [{'id': i, 'media_type': 'tv'} for i in range(1, 121)], chunks.append,
    )

    assert len(final) == 120
    assert [s.chunk_index for s in chunks] == [1, 2, 3]


@pytest.mark.asyncio
async def test_single_title_providers(pipeline, catalog):
    catalog.provider_payloads[('tv', 1396)] = providers_payload(1396, flatrate=[NETFLIX])

    providers = await pipeline.get_providers(1396, MediaKind.SERIES)
    missing = await pipeline.get_providers(1, MediaKind.MOVIE)

    assert providers.subscription[0].provider_id == 8
    assert missing is None


@pytest.mark.asyncio
async def test_single_title_providers_propagate_errors(pipeline, catalog):
    catalog.errors[('providers', ('movie', 1))] = UpstreamError('not found', 404)

    with pytest.raises(UpstreamError):
        await pipeline.get_providers(1, MediaKind.MOVIE)


@pytest.mark.asyncio
async def test_external_ids(pipeline, catalog):
    catalog.external_ids[('tv', 1396)] = {'id': 1396, 'imdb_id': 'tt0903747'}

    ids = await pipeline.get_external_ids(1396, MediaKind.SERIES)

    assert ids.imdb_id == 'tt0903747'


@pytest.mark.asyncio
async def test_autocomplete_and_warm_up(pipeline):
    stats = await pipeline.warm_up()
    records = await pipeline.autocomplete('breakng bad')

    assert stats['index']['ready'] is True
    assert stats['corpus']['total'] == 20
    assert stats['region'] == 'US'
    assert records[0].display_title == 'Breaking Bad'
