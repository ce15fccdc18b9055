"""Unit tests for the anti-block detector."""

import pytest

from scrapeguard.resilience.anti_block import AntiBlockDetector, Verdict

LONG_PAGE = "<html>" + "profile content " * 20 + "</html>"


class TestClassify:
    """Classification is pure and driven by three signal classes."""

    def test_clear_page(self, detector):
        result = detector.classify(LONG_PAGE, "https://example.com/in/ada", 200)
        assert result.verdict is Verdict.CLEAR
        assert result.reasons == ()
        assert result.blocked is False

    def test_phrase_signal(self, detector):
        result = detector.classify(LONG_PAGE + " Please complete this Security Check", None, 200)
        assert result.blocked
        assert result.severity == "high"
        assert any("security check" in r for r in result.reasons)

    def test_challenge_redirect(self, detector):
        result = detector.classify(LONG_PAGE, "https://example.com/checkpoint/lg/login", 200)
        assert result.blocked
        assert result.severity == "high"

    def test_status_only_is_medium(self, detector):
        result = detector.classify(LONG_PAGE, "https://example.com/a", 429)
        assert result.blocked
        assert result.severity == "medium"
        assert result.reasons == ("HTTP 429",)

    def test_minimal_content_alone_is_suspicious(self, detector):
        result = detector.classify("tiny", "https://example.com/a", 200)
        assert result.verdict is Verdict.SUSPICIOUS
        assert result.severity == "low"

    def test_minimal_content_corroborates_block(self, detector):
        result = detector.classify("", None, 403)
        assert result.blocked
        assert "minimal content" in result.reasons
        assert result.severity == "high"

    def test_classify_does_not_change_state(self, detector):
        detector.classify("captcha", None, 429)
        assert detector.state.consecutive_block_count == 0
        assert detector.is_in_cooldown() is False


class TestCooldown:
    """Exponential cooldown clamped to the maximum."""

    def test_first_block_uses_initial_cooldown(self, detector):
        assert detector.record_block() == 5000

    def test_cooldown_sequence(self, detector):
        cooldowns = [detector.record_block() for _ in range(4)]
        assert cooldowns == [5000, 10000, 20000, 20000]

    def test_in_cooldown_evaluated_lazily(self, detector, clock):
        detector.record_block()
        assert detector.is_in_cooldown() is True
        assert detector.cooldown_remaining_ms() == pytest.approx(5000)
        clock.advance(4.0)
        assert detector.cooldown_remaining_ms() == pytest.approx(1000)
        clock.advance(1.0)
        assert detector.is_in_cooldown() is False

    def test_success_does_not_reset_count(self, detector):
        detector.record_block()
        detector.record_block()
        detector.record_success()
        assert detector.state.consecutive_block_count == 2
        assert detector.state.success_streak == 1

    def test_block_resets_success_streak(self, detector):
        detector.record_success()
        detector.record_success()
        detector.record_block()
        assert detector.state.success_streak == 0

    def test_reset(self, detector):
        detector.record_block()
        detector.record_block()
        detector.reset()
        assert detector.state.consecutive_block_count == 0
        assert detector.state.current_cooldown_ms == 5000
        assert detector.is_in_cooldown() is False
        assert detector.record_block() == 5000


class TestReport:
    def test_severity_levels(self, detector):
        assert detector.severity == "none"
        detector.record_block()
        assert detector.severity == "low"
        for _ in range(3):
            detector.record_block()
        assert detector.severity == "medium"
        for _ in range(2):
            detector.record_block()
        assert detector.severity == "high"

    def test_recommended_wait_outside_cooldown(self, clock):
        det = AntiBlockDetector(initial_cooldown_ms=1000, max_cooldown_ms=1000, base_delay_ms=100, clock=clock)
        assert det.recommended_wait_ms() == 0
        det.record_block()
        clock.advance(5)
        assert det.recommended_wait_ms() == 200

    def test_report_fields(self, detector):
        detector.record_block()
        detector.record_block()
        detector.record_block()
        report = detector.generate_report()
        assert report["block_count"] == 3
        assert report["in_cooldown"] is True
        assert report["current_cooldown_ms"] == 20000
        assert report["last_block_at"] is not None
        assert report["severity"] == "medium"
        assert any("proxy rotation" in r for r in report["recommendations"])

    def test_empty_report(self, detector):
        report = detector.generate_report()
        assert report["block_count"] == 0
        assert report["last_block_at"] is None
        assert report["recommendations"] == []
