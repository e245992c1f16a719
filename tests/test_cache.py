"""Unit tests for the TTL cache."""

import asyncio

from app.cache import TTLCache, student_key, students_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_get_and_set():
    cache = TTLCache(default_ttl=60, clock=FakeClock())
    assert cache.get('missing') is None

    cache.set('a', {'value': 1})
    assert cache.get('a') == {'value': 1}
    assert 'a' in cache
    assert len(cache) == 1


def test_entries_expire():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.set('a', 1)
    cache.set('b', 2, ttl=10)

    clock.advance(30)
    assert cache.get('a') == 1
    assert cache.get('b') is None

    clock.advance(31)
    assert cache.get('a') is None
    assert len(cache) == 0


def test_clean_expired():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.set('a', 1)
    cache.set('b', 2, ttl=120)
    clock.advance(90)

    assert cache.clean_expired() == 1
    assert 'b' in cache
    assert 'a' not in cache


def test_eviction_prefers_least_hit_then_oldest():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, max_size=2, clock=clock)
    cache.set('a', 1)
    clock.advance(1)
    cache.set('b', 2)
    cache.get('a')

    clock.advance(1)
    cache.set('c', 3)
    assert 'b' not in cache
    assert 'a' in cache and 'c' in cache

    # a has one hit, c none
    clock.advance(1)
    cache.set('d', 4)
    assert 'c' not in cache
    assert cache.stats()['evictions'] == 2


def test_overwrite_does_not_evict():
    cache = TTLCache(default_ttl=60, max_size=2, clock=FakeClock())
    cache.set('a', 1)
    cache.set('b', 2)
    cache.set('a', 10)
    assert cache.get('a') == 10
    assert cache.get('b') == 2
    assert cache.stats()['evictions'] == 0


def test_stats():
    cache = TTLCache(default_ttl=60, max_size=5, clock=FakeClock())
    cache.set('a', 1)
    cache.get('a')
    cache.get('a')
    cache.get('nope')

    stats = cache.stats()
    assert stats['hits'] == 2
    assert stats['misses'] == 1
    assert stats['sets'] == 1
    assert stats['total_requests'] == 3
    assert stats['hit_rate'] == 66.67
    assert stats['cache_size'] == 1
    assert stats['max_size'] == 5

    cache.clear()
    assert cache.stats()['total_requests'] == 0
    assert cache.stats()['hit_rate'] == 0.0


def test_get_or_set_fetches_once():
    cache = TTLCache(default_ttl=60, clock=FakeClock())
    calls = []

    async def fetch():
        calls.append(1)
        return ['roster']

    async def run():
        first = await cache.get_or_set(students_key('C1'), fetch)
        second = await cache.get_or_set(students_key('C1'), fetch)
        return first, second

    first, second = asyncio.run(run())
    assert first == second == ['roster']
    assert len(calls) == 1


def test_keys():
    assert student_key('anish@school.org') == 'student:anish@school.org'
    assert students_key('C1') == 'students:C1'
