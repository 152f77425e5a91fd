"""Tests for AnalysisCache TTL and capacity behaviour."""
import threading

import pytest

from riskwatch.shared.models import (
    AnalysisSource,
    AssessmentResult,
    CounselingRecommendation,
    RiskLevel,
)
from riskwatch.services.risk_engine.cache import AnalysisCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _result(level: RiskLevel = RiskLevel.LOW) -> AssessmentResult:
    return AssessmentResult(
        risk_level=level,
        counseling=CounselingRecommendation.NONE,
        immediate_intervention=False,
        source=AnalysisSource.AUDIO,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AnalysisCache(ttl_seconds=300, capacity=3, clock=clock)


class TestExpiry:

    def test_retrievable_before_ttl(self, cache, clock):
        value = _result()
        cache.put("c1", value)

        clock.advance(299.9)

        assert cache.get("c1") is value

    def test_absent_at_ttl(self, cache, clock):
        cache.put("c1", _result())

        clock.advance(300)

        assert cache.get("c1") is None

    def test_absent_after_ttl(self, cache, clock):
        cache.put("c1", _result())

        clock.advance(1000)

        assert cache.get("c1") is None
        assert len(cache) == 0

    def test_missing_key(self, cache):
        assert cache.get("nope") is None

    def test_reinsert_refreshes_timestamp(self, cache, clock):
        cache.put("c1", _result())
        clock.advance(200)
        cache.put("c1", _result(RiskLevel.HIGH))
        clock.advance(200)

        assert cache.get("c1").risk_level == RiskLevel.HIGH


class TestCapacity:

    def test_full_cache_evicts_oldest_inserted(self, cache):
        cache.put("a", _result())
        cache.put("b", _result())
        cache.put("c", _result())

        cache.put("d", _result())

        assert len(cache) == 3
        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.get("d") is not None

    def test_eviction_ignores_access_order(self, cache):
        cache.put("a", _result())
        cache.put("b", _result())
        cache.put("c", _result())
        cache.get("a")

        cache.put("d", _result())

        assert cache.get("a") is None

    def test_replacing_existing_key_does_not_evict(self, cache):
        cache.put("a", _result())
        cache.put("b", _result())
        cache.put("c", _result())

        cache.put("b", _result(RiskLevel.SEVERE))

        assert len(cache) == 3
        assert cache.get("a") is not None

    def test_never_exceeds_capacity_under_concurrency(self, clock):
        cache = AnalysisCache(ttl_seconds=300, capacity=10, clock=clock)

        def writer(prefix):
            for i in range(200):
                cache.put(f"{prefix}-{i}", _result())
                cache.get(f"{prefix}-{i // 2}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 10


class TestMaintenance:

    def test_clear_returns_count(self, cache):
        cache.put("a", _result())
        cache.put("b", _result())

        assert cache.clear() == 2
        assert len(cache) == 0
        assert cache.clear() == 0

    def test_stats(self, cache):
        cache.put("a", _result())
        assert cache.stats() == {"size": 1, "capacity": 3, "ttl_seconds": 300}

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            AnalysisCache(capacity=0)
        with pytest.raises(ValueError):
            AnalysisCache(ttl_seconds=0)
