import pytest

from coc_cwl.client.cache import WarCache

class FakeClock():
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

class TestWarCache:

    def test_entry_expires_exactly_at_ttl(self):
        clock = FakeClock()
        cache = WarCache(ttl=60,clock=clock)
        cache['k'] = 'v'

        clock.now = 59.999
        assert cache.get('k') == 'v'

        clock.now = 60.0
        assert cache.get('k') is None
        assert 'k' not in cache
        cache.purge_expired()
        assert len(cache) == 0

    def test_purge_expired(self):
        clock = FakeClock()
        cache = WarCache(ttl=10,clock=clock)
        cache['a'] = 1
        clock.now = 5
        cache['b'] = 2
        clock.now = 10
        assert cache.purge_expired() == 1
        assert 'b' in cache
        assert 'a' not in cache

    def test_maxsize_evicts_oldest(self):
        cache = WarCache(ttl=60,maxsize=2,clock=FakeClock())
        cache['a'] = 1
        cache['b'] = 2
        cache['c'] = 3
        assert len(cache) == 2
        assert 'a' not in cache
        assert cache.get('c') == 3

    def test_default_clock(self):
        cache = WarCache(ttl=60)
        cache['k'] = 'v'
        assert cache.get('k') == 'v'

    @pytest.mark.asyncio
    async def test_get_or_fetch_caches_within_ttl(self):
        clock = FakeClock()
        cache = WarCache(ttl=60,clock=clock)
        calls = []

        async def fetch():
            calls.append(1)
            return ['war']

        assert await cache.get_or_fetch('k',fetch) == ['war']
        assert await cache.get_or_fetch('k',fetch) == ['war']
        assert len(calls) == 1

        clock.now = 61
        await cache.get_or_fetch('k',fetch)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_none_is_not_cached(self):
        cache = WarCache(ttl=60,clock=FakeClock())
        calls = []

        async def fetch():
            calls.append(1)
            return None

        await cache.get_or_fetch('k',fetch)
        await cache.get_or_fetch('k',fetch)
        assert len(calls) == 2
