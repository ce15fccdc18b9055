"""Property tests for the result cache.

Validates capacity bounds, FIFO eviction by write order, and lazy expiry.
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from scrapeguard.cache.result_cache import ResultCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

keys = st.sampled_from([f"extract:https://example.com/{n}" for n in range(12)])
write_sequences = st.lists(keys, min_size=1, max_size=60)
capacities = st.integers(min_value=1, max_value=8)
ttls = st.floats(min_value=0.5, max_value=100.0)
elapsed = st.floats(min_value=0.0, max_value=200.0)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@settings(max_examples=100)
@given(writes=write_sequences, capacity=capacities)
def test_size_never_exceeds_capacity(writes: list[str], capacity: int) -> None:
    cache = ResultCache(max_entries=capacity, default_ttl_seconds=60, clock=_Clock())
    for key in writes:
        cache.put(key, {"key": key})
        assert len(cache) <= capacity


@settings(max_examples=100)
@given(writes=write_sequences, capacity=capacities)
def test_retains_most_recent_distinct_writes(writes: list[str], capacity: int) -> None:
    cache = ResultCache(max_entries=capacity, default_ttl_seconds=60, clock=_Clock())
    for key in writes:
        cache.put(key, {"key": key})

    # Most recently written distinct keys, newest first
    expected: list[str] = []
    for key in reversed(writes):
        if key not in expected:
            expected.append(key)
    expected = expected[:capacity]

    for key in expected:
        assert cache.get(key) == {"key": key}
    assert len(cache) == len(expected)


@settings(max_examples=100)
@given(ttl=ttls, wait=elapsed)
def test_entry_visible_iff_not_expired(ttl: float, wait: float) -> None:
    clock = _Clock()
    cache = ResultCache(max_entries=4, default_ttl_seconds=60, clock=clock)
    cache.put("k", {"v": 1}, ttl_seconds=ttl)
    clock.now += wait

    if wait > ttl:
        assert cache.get("k") is None
        assert len(cache) == 0
    else:
        assert cache.get("k") == {"v": 1}
