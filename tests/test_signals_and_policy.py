"""
Unit tests for the supporting modules:
    - AllocationPolicy validation (pageone/config.py)
    - rounding and share helpers (pageone/numeric.py)
    - fulfillment, brand resolution and brand validation (pageone/listing_signals.py)
    - TelemetryRecorder (pageone/telemetry.py)

Run with:
    pytest tests/test_signals_and_policy.py -v
"""

import logging

import pytest

# ─── Helpers ─────────────────────────────────────────────────────────────────

def _make_listing(**kwargs):
    from pageone.models.listing import Listing
    kwargs.setdefault("asin", "B000000001")
    kwargs.setdefault("slot", 1)
    return Listing(**kwargs)


def _make_product(position, brand=None, source="listing", units=10, price=10.0):
    from pageone.models.product import BrandResolution, BrandStatus, CanonicalProduct
    resolution = BrandResolution(
        raw_brand=brand,
        brand=brand,
        status=BrandStatus.CANONICAL if source != "title_parse" else BrandStatus.LOW_CONFIDENCE,
        source=source,
    ) if brand else BrandResolution()
    return CanonicalProduct(
        asin=f"B{position:09d}",
        page_position=position,
        organic_rank=position,
        price=price,
        brand=resolution,
    ).with_units(units)


# ─── 1. Policy ───────────────────────────────────────────────────────────────

class TestAllocationPolicy:
    def test_defaults(self):
        from pageone.config import DEFAULT_POLICY, PAGE_SIZE
        assert DEFAULT_POLICY.page_size == PAGE_SIZE == 49
        assert DEFAULT_POLICY.scaling.alignment_multiplier == 1.85
        assert DEFAULT_POLICY.calibration.trusted_band_alignment == 0.95

    def test_rejects_bad_page_size(self):
        from pageone.config import AllocationPolicy
        with pytest.raises(ValueError):
            AllocationPolicy(page_size=0)

    def test_rejects_inverted_bounds(self):
        from pageone.config import AllocationPolicy, ScalingPolicy
        with pytest.raises(ValueError):
            AllocationPolicy(scaling=ScalingPolicy(expansion_bounds=(5.0, 1.0)))


# ─── 2. Numeric helpers ──────────────────────────────────────────────────────

class TestNumeric:
    def test_round_half_up(self):
        from pageone.numeric import round_half_up
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2
        assert round_half_up(float("nan")) == 0

    def test_largest_remainder_exact_total(self):
        from pageone.numeric import largest_remainder
        parts = largest_remainder([1, 1, 1], 100)
        assert sum(parts) == 100
        assert parts == [34, 33, 33]

    def test_largest_remainder_tie_keys(self):
        from pageone.numeric import largest_remainder
        assert largest_remainder([1, 1, 1], 100, keys=["c", "a", "b"]) == [33, 34, 33]

    def test_revenue_shares_sum(self):
        from pageone.numeric import revenue_shares
        shares = revenue_shares([1.0, 1.0, 1.0])
        assert shares == [33.34, 33.33, 33.33]
        assert revenue_shares([0.0, 0.0]) == [0.0, 0.0]

    def test_safe_median(self):
        from pageone.numeric import safe_median
        assert safe_median([None, 0, 3, 5]) == 4.0
        assert safe_median([None]) is None


# ─── 3. Fulfillment and brands ───────────────────────────────────────────────

class TestInferFulfillment:
    @pytest.mark.parametrize("kwargs,expected", [
        ({"seller": "Amazon.com"}, "AMZ"),
        ({"brand": "Amazon", "is_prime": True}, "AMZ"),
        ({"is_prime": True}, "FBA"),
        ({"fulfillment_hint": "fbm"}, "FBM"),
        ({}, "UNKNOWN"),
    ])
    def test_classes(self, kwargs, expected):
        from pageone.listing_signals import infer_fulfillment
        assert infer_fulfillment(_make_listing(**kwargs)).value == expected


class TestResolveBrand:
    def test_stated_brand(self):
        from pageone.listing_signals import resolve_brand
        resolution = resolve_brand(_make_listing(brand="Cosori", brand_source="metadata"))
        assert resolution.status.value == "canonical"
        assert resolution.source == "metadata"

    def test_title_parse_normalized(self):
        from pageone.listing_signals import resolve_brand
        resolution = resolve_brand(_make_listing(title="Hamilton Beach 2-Slice Toaster"))
        assert resolution.brand == "Hamilton Beach"
        assert resolution.status.value == "low_confidence"
        assert resolution.source == "title_parse"

    def test_all_caps_title(self):
        from pageone.listing_signals import extract_brand_from_title
        assert extract_brand_from_title("COSORI 5.8QT Air Fryer") == "COSORI"

    def test_nothing_to_go_on(self):
        from pageone.listing_signals import resolve_brand
        resolution = resolve_brand(_make_listing(title="12 pack of towels"))
        assert resolution.brand is None
        assert resolution.status.value == "unknown"


class TestValidateBrandFrequency:
    def test_rules(self):
        from pageone.config import DEFAULT_POLICY
        from pageone.listing_signals import validate_brand_frequency
        products = [
            _make_product(1, "Acme", units=1000),
            _make_product(2, "Acme", units=1000),
            _make_product(3, "Solo", source="metadata", units=1),
            _make_product(4, "Tiny", source="title_parse", units=1),
            _make_product(5, "Big", source="title_parse", units=500),
        ]
        result = {p.asin: p.brand for p in validate_brand_frequency(products, DEFAULT_POLICY.brands)}
        assert result["B000000001"].brand == "Acme"
        assert result["B000000003"].brand == "Solo"
        assert result["B000000005"].brand == "Big"
        assert result["B000000004"].brand is None
        assert result["B000000004"].raw_brand == "Tiny"
        assert result["B000000004"].status.value == "unknown"

    def test_zero_revenue_stand_in_from_policy(self):
        """Big sits at zero units: priced at 50 x $10 it holds 20% of the page, at 0 x it holds none."""
        from dataclasses import replace
        from pageone.config import DEFAULT_POLICY
        from pageone.listing_signals import validate_brand_frequency
        products = [
            _make_product(1, "Acme", units=100),
            _make_product(2, "Acme", units=100),
            _make_product(3, "Big", source="title_parse", units=0),
        ]
        kept = validate_brand_frequency(products, DEFAULT_POLICY.brands)
        assert kept[2].brand.brand == "Big"

        no_stand_in = replace(DEFAULT_POLICY.brands, zero_revenue_stand_in_units=0.0)
        rejected = validate_brand_frequency(products, no_stand_in)
        assert rejected[2].brand.brand is None


# ─── 4. Telemetry ────────────────────────────────────────────────────────────

class TestTelemetryRecorder:
    def test_events_kept_in_order(self, caplog):
        from pageone.telemetry import TelemetryRecorder
        telemetry = TelemetryRecorder()
        with caplog.at_level(logging.INFO, logger="pageone.telemetry"):
            telemetry.emit("first", count=1)
            telemetry.emit("second", level=logging.WARNING, count=2)
        assert [e["name"] for e in telemetry.to_list()] == ["first", "second"]
        assert telemetry.named("second")[0].payload == {"count": 2}
        assert caplog.records[0].payload == {"count": 1}
        assert caplog.records[1].levelno == logging.WARNING
