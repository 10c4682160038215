"""
Unit tests for page sizing:
    - estimate_rough_demand() and its helpers (pageone/demand_estimator.py)
    - competition level, confidence and calibrate_market_totals() (pageone/calibration.py)

Run with:
    pytest tests/test_demand_calibration.py -v
"""

import pytest

# ─── Helpers ─────────────────────────────────────────────────────────────────

def _make_product(rank, price=40.0, reviews=200, rating=4.5, sponsored=False, category=None):
    from pageone.models.product import CanonicalProduct
    return CanonicalProduct(
        asin=f"B{rank:09d}",
        page_position=rank,
        organic_rank=None if sponsored else rank,
        organic_slot=None if sponsored else rank,
        appears_sponsored=sponsored,
        sponsored_positions=(rank,) if sponsored else (),
        price=price,
        rating=rating,
        review_count=reviews,
        category=category,
    )


def _make_page(n, **kwargs):
    return [_make_product(i, **kwargs) for i in range(1, n + 1)]


def _policy():
    from pageone.config import DEFAULT_POLICY
    return DEFAULT_POLICY


# ─── 1. Price and category helpers ───────────────────────────────────────────

class TestPriceMultiplier:
    @pytest.mark.parametrize("avg_price,expected", [
        (5.0, 1.5),
        (20.0, 1.2),
        (40.0, 1.0),
        (75.0, 0.8),
        (150.0, 0.6),
    ])
    def test_tiers(self, avg_price, expected):
        from pageone.demand_estimator import price_multiplier
        assert price_multiplier(avg_price, _policy().demand) == expected


class TestMajorityCategory:
    def test_most_common_wins(self):
        from pageone.demand_estimator import majority_category
        assert majority_category(["Home", "Home", "Beauty"]) == "Home"

    def test_tie_goes_alphabetical(self):
        from pageone.demand_estimator import majority_category
        assert majority_category(["Home", "Beauty", "Home", "Beauty"]) == "Beauty"

    def test_empty_hints(self):
        from pageone.demand_estimator import majority_category
        assert majority_category([None, "", "  "]) is None


class TestPriceStats:
    def test_ignores_missing_prices(self):
        from pageone.demand_estimator import price_stats
        products = [_make_product(1, price=10.0), _make_product(2, price=30.0), _make_product(3, price=0.0)]
        stats = price_stats(products)
        assert stats.min_price == 10.0
        assert stats.max_price == 30.0
        assert stats.avg_price == 20.0
        assert stats.band_midpoint == 20.0


# ─── 2. Market shape ─────────────────────────────────────────────────────────

class TestClassifyShape:
    def test_durable_by_price(self):
        from pageone.demand_estimator import classify_shape
        from pageone.models.market import MarketShape
        assert classify_shape(350.0, 10_000, _policy().demand) is MarketShape.DURABLE

    def test_consumable_needs_cheap_and_volume(self):
        from pageone.demand_estimator import classify_shape
        from pageone.models.market import MarketShape
        assert classify_shape(20.0, 100_000, _policy().demand) is MarketShape.CONSUMABLE
        assert classify_shape(20.0, 50_000, _policy().demand) is MarketShape.HYBRID

    def test_mid_price_is_hybrid(self):
        from pageone.demand_estimator import classify_shape
        from pageone.models.market import MarketShape
        assert classify_shape(120.0, 500_000, _policy().demand) is MarketShape.HYBRID


# ─── 3. Rough demand ─────────────────────────────────────────────────────────

class TestEstimateRoughDemand:
    def test_hybrid_page(self):
        """10 organic listings at $40: 10 x 800 x 1.0 units, revenue at avg price."""
        from pageone.demand_estimator import estimate_rough_demand
        from pageone.models.market import MarketShape
        rough = estimate_rough_demand(_make_page(10), _policy().demand)
        assert rough.shape is MarketShape.HYBRID
        assert rough.units == 8000.0
        assert rough.revenue == pytest.approx(320_000.0)
        assert rough.organic_count == 10

    def test_sponsored_only_listings_not_counted(self):
        from pageone.demand_estimator import estimate_rough_demand
        page = _make_page(4) + [_make_product(10 + i, sponsored=True) for i in range(3)]
        rough = estimate_rough_demand(page, _policy().demand)
        assert rough.organic_count == 4
        assert rough.units == 4 * 800.0

    def test_consumable_page(self):
        from pageone.demand_estimator import estimate_rough_demand
        from pageone.models.market import MarketShape
        rough = estimate_rough_demand(_make_page(20, price=5.0, reviews=5000), _policy().demand)
        assert rough.shape is MarketShape.CONSUMABLE
        assert rough.units == 20 * 1500 * 1.5

    def test_emits_event(self):
        from pageone.demand_estimator import estimate_rough_demand
        from pageone.telemetry import TelemetryRecorder
        telemetry = TelemetryRecorder()
        estimate_rough_demand(_make_page(3), _policy().demand, telemetry)
        assert telemetry.named("demand.estimated")[0].payload["organic_count"] == 3


class TestReviewBandUnits:
    def test_medium_band_floor(self):
        """10 listings, median 200 reviews: 10 x 400 = 4000, lifted to the medium band floor."""
        from pageone.demand_estimator import review_band_units
        assert review_band_units(_make_page(10), None, _policy().demand) == 6000.0

    def test_band_cut_follows_policy(self):
        from dataclasses import replace
        from pageone.demand_estimator import review_band_units
        stricter = replace(_policy().demand, low_band_max_listings=12)
        assert review_band_units(_make_page(10), None, stricter) == 4000.0

    def test_policy_tables_are_read_only(self):
        with pytest.raises(TypeError):
            _policy().demand.review_bands["low"] = (0.0, 1.0)
        with pytest.raises(TypeError):
            _policy().calibration.market_ranges["low_competition"] = (0.0, 0.0, 0.0, 0.0)


# ─── 4. Competition level and confidence ─────────────────────────────────────

class TestCompetitionLevel:
    def test_few_listings_is_low(self):
        from pageone.calibration import MarketSignals, competition_level
        from pageone.models.market import CompetitionLevel
        signals = MarketSignals(listing_count=5, review_dispersion=5000, sponsored_density=50)
        assert competition_level(signals, _policy().calibration) is CompetitionLevel.LOW

    def test_dispersed_large_page_is_high(self):
        from pageone.calibration import MarketSignals, competition_level
        from pageone.models.market import CompetitionLevel
        signals = MarketSignals(listing_count=20, review_dispersion=2500, sponsored_density=10)
        assert competition_level(signals, _policy().calibration) is CompetitionLevel.HIGH

    def test_otherwise_medium(self):
        from pageone.calibration import MarketSignals, competition_level
        from pageone.models.market import CompetitionLevel
        signals = MarketSignals(listing_count=10, review_dispersion=1000, sponsored_density=30)
        assert competition_level(signals, _policy().calibration) is CompetitionLevel.MEDIUM


class TestCalibrationConfidence:
    def test_strong_signals(self):
        from pageone.calibration import MarketSignals, calibration_confidence
        confidence, reason = calibration_confidence(
            MarketSignals(listing_count=20, review_dispersion=1500, sponsored_density=10), _policy().calibration
        )
        assert confidence == "High"
        assert reason.endswith(".")

    def test_weak_signals(self):
        from pageone.calibration import MarketSignals, calibration_confidence
        confidence, _ = calibration_confidence(
            MarketSignals(listing_count=3, review_dispersion=0, sponsored_density=50), _policy().calibration
        )
        assert confidence == "Low"

    def test_tiers_follow_policy(self):
        from dataclasses import replace
        from pageone.calibration import MarketSignals, calibration_confidence
        signals = MarketSignals(listing_count=10, review_dispersion=600, sponsored_density=30)
        default, reason = calibration_confidence(signals, _policy().calibration)
        assert default == "Medium"
        assert reason.startswith("Moderate listing coverage (8+ products)")

        lenient = replace(_policy().calibration, confidence_tiers=((60, "High"), (40, "Medium")))
        assert calibration_confidence(signals, lenient)[0] == "High"


class TestMarketSignals:
    def test_density_and_dispersion(self):
        from pageone.calibration import market_signals
        page = [_make_product(1, reviews=100), _make_product(2, reviews=300), _make_product(3, sponsored=True)]
        signals = market_signals(page)
        assert signals.listing_count == 2
        assert signals.sponsored_density == pytest.approx(100 / 3)
        assert signals.review_dispersion > 0


# ─── 5. calibrate_market_totals ──────────────────────────────────────────────

class TestCalibrateMarketTotals:
    def _rough(self, units=8000.0, revenue=320_000.0, price=40.0):
        from pageone.demand_estimator import RoughDemand
        from pageone.models.market import MarketShape, PriceStats
        return RoughDemand(
            units=units,
            revenue=revenue,
            shape=MarketShape.HYBRID,
            price=PriceStats(price, price, price, price),
            category=None,
            organic_count=10,
            coarse_volume=60_000,
            price_multiplier=1.0,
        )

    def _medium_page(self):
        # Alternating review depth: std 700, no sponsored listings
        return [_make_product(i, reviews=100 if i % 2 else 1500) for i in range(1, 11)]

    def test_medium_band_with_alignment(self):
        from pageone.calibration import calibrate_market_totals
        from pageone.models.market import CompetitionLevel
        totals = calibrate_market_totals(self._rough(), self._medium_page(), _policy().calibration)

        assert totals.competition_level is CompetitionLevel.MEDIUM
        assert totals.calibration_factor == 1.2
        # 8000 x 1.2 = 9600, inside [6000, 15000], then x 0.95
        assert totals.total_units == 9120.0
        # Revenue max(9600 x 40, 320000 x 1.2) clamped to 375000, then x 0.95
        assert totals.total_revenue == pytest.approx(356_250.0)
        assert totals.calibrated_units == totals.total_units
        assert totals.raw_units == 8000.0

    def test_units_clamped_to_band(self):
        from pageone.calibration import calibrate_market_totals
        totals = calibrate_market_totals(self._rough(units=100.0, revenue=4000.0), self._medium_page(), _policy().calibration)
        # 100 x 1.2 = 120 clamps up to the 6000 band floor
        assert totals.total_units == 5700.0

    def test_zero_rough_units(self):
        from pageone.calibration import calibrate_market_totals
        totals = calibrate_market_totals(self._rough(units=0.0, revenue=0.0), [], _policy().calibration)
        assert totals.total_units == 0.0
        assert totals.total_revenue == 0.0

    def test_search_volume_carried(self):
        from pageone.calibration import calibrate_market_totals
        totals = calibrate_market_totals(
            self._rough(), self._medium_page(), _policy().calibration,
            search_volume_low=1000, search_volume_high=3000,
        )
        assert totals.effective_search_volume == 2000
