import asyncio

import pytest

from streamscout_app.cache import MemoryBackend
from streamscout_app.catalog.base import RateLimiter
from streamscout_app.config import Settings
from streamscout_app.services import AsyncRunner, build_services


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv('TMDB_API_KEY', 'abc')
    monkeypatch.setenv('STREAMSCOUT_REGION', 'gb')
    monkeypatch.setenv('SEARCH_CACHE_TTL', '60')
    monkeypatch.setenv('SEARCH_CACHE_BACKEND', 'Memory')
    monkeypatch.setenv('TYPO_CONFIDENCE', '0.8')
    monkeypatch.setenv('DISABLE_RATE_LIMITING', 'yes')

    settings = Settings.from_env()

    assert settings.tmdb_api_key == 'abc'
    assert settings.region == 'GB'
    assert settings.cache_ttl == 60
    assert settings.cache_backend == 'memory'
    assert settings.typo_confidence == 0.8
    assert settings.disable_rate_limiting is True
    assert settings.availability_chunk_size == 50


@pytest.mark.parametrize('name, value', [
    ('SEARCH_CACHE_TTL', 'thirty'),
    ('SEARCH_CACHE_TTL', '0'),
    ('UPSTREAM_TIMEOUT', 'fast'),
    ('MATCH_ACCEPT_DISTANCE', '1.5'),
    ('AVAILABILITY_CHUNK_SIZE', '0'),
])
def test_invalid_settings_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Settings.from_env()


def test_async_runner_runs_and_iterates():
    runner = AsyncRunner()

    async def double(x):
        await asyncio.sleep(0)
        return x * 2

    async def count(n):
        for i in range(n):
            yield i

    try:
        assert runner.run(double(21)) == 42
        assert list(runner.iterate(count(3))) == [0, 1, 2]
    finally:
        runner.stop()


def test_async_runner_closes_abandoned_generator():
    runner = AsyncRunner()
    closed = []

    async def endless():
        try:
            i = 0
            while True:
                yield i
                i += 1
        finally:
            closed.append(True)

    try:
        iterator = runner.iterate(endless())
        assert next(iterator) == 0
        iterator.close()
        assert closed == [True]
    finally:
        runner.stop()


def test_build_services_wires_settings(settings, catalog):
    settings.region = 'CA'
    settings.availability_chunk_size = 20
    services = build_services(settings, catalog=catalog, backend=MemoryBackend())
    try:
        pipeline = services.pipeline
        assert pipeline.region == 'CA'
        assert pipeline.resolver.chunk_size == 20
        assert pipeline.resolver.fetcher.region == 'CA'
        assert pipeline.cache.ttl_seconds == settings.cache_ttl
        assert services.run(pipeline.warm_up())['corpus']['total'] == 20
    finally:
        services.close()


def test_rate_limiter_built_off_loop_works_on_runner_loop():
    limiter = RateLimiter(60000)
    runner = AsyncRunner()

    async def contend():
        await asyncio.gather(*(limiter.acquire() for _ in range(5)))
        return limiter.last_request

    try:
        assert runner.run(contend(), timeout=5) > 0
        assert runner.run(contend(), timeout=5) > 0
    finally:
        runner.stop()
