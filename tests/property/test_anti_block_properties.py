"""Property tests for the anti-block detector.

Validates the clamped exponential cooldown sequence, monotonic escalation,
and that classification never mutates state.
"""

from __future__ import annotations

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from scrapeguard.resilience.anti_block import AntiBlockDetector, Verdict


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

initial_cooldowns = st.integers(min_value=1, max_value=10_000)
multipliers = st.floats(min_value=1.0, max_value=4.0)
block_counts = st.integers(min_value=1, max_value=30)
page_contents = st.text(max_size=300)
status_codes = st.sampled_from([None, 200, 201, 301, 302, 401, 403, 404, 429, 500, 503])


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


def test_documented_cooldown_sequence() -> None:
    detector = AntiBlockDetector(5000, 20000, 2.0, clock=_Clock())
    assert [detector.record_block() for _ in range(4)] == [5000, 10000, 20000, 20000]


@settings(max_examples=100)
@given(
    initial=initial_cooldowns,
    span=st.integers(min_value=0, max_value=100_000),
    multiplier=multipliers,
    count=block_counts,
)
def test_cooldown_formula_and_clamp(initial: int, span: int, multiplier: float, count: int) -> None:
    maximum = initial + span
    detector = AntiBlockDetector(initial, maximum, multiplier, clock=_Clock())

    previous = 0.0
    for n in range(1, count + 1):
        cooldown = detector.record_block()
        assert cooldown == min(initial * multiplier ** (n - 1), maximum)
        assert initial <= cooldown <= maximum
        assert cooldown >= previous
        previous = cooldown

    assert detector.state.consecutive_block_count == count


@settings(max_examples=100)
@given(content=page_contents, status=status_codes, url=st.sampled_from(["", "https://x.com/a", "https://x.com/checkpoint/1"]))
def test_classify_is_pure(content: str, status: int | None, url: str) -> None:
    detector = AntiBlockDetector(
        block_phrases=["captcha"], challenge_url_patterns=["/checkpoint/"], clock=_Clock()
    )
    first = detector.classify(content, url, status)
    second = detector.classify(content, url, status)

    assert first == second
    assert detector.state.consecutive_block_count == 0
    if status in (401, 403, 429) or "/checkpoint/" in url or "captcha" in content.lower():
        assert first.verdict is Verdict.BLOCKED
    else:
        assert first.verdict is not Verdict.BLOCKED


@settings(max_examples=100)
@given(count=block_counts, elapsed_ms=st.integers(min_value=0, max_value=200_000))
def test_cooldown_expires_lazily(count: int, elapsed_ms: int) -> None:
    clock = _Clock()
    detector = AntiBlockDetector(1000, 60_000, 2.0, clock=clock)
    for _ in range(count):
        cooldown = detector.record_block()

    assume(abs(elapsed_ms - cooldown) > 1)
    clock.now += elapsed_ms / 1000.0
    assert detector.is_in_cooldown() == (elapsed_ms < cooldown)
