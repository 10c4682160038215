"""
Unit tests for variant-group re-splitting (pageone/parent_child.py).

Run with:
    pytest tests/test_parent_child.py -v
"""

import pytest

# ─── Helpers ─────────────────────────────────────────────────────────────────

def _make_child(position, units, group="B0PARENT01", reviews=100, rating=4.5, price=20.0):
    from pageone.models.product import CanonicalProduct
    return CanonicalProduct(
        asin=f"B{position:09d}",
        page_position=position,
        organic_rank=position,
        price=price,
        rating=rating,
        review_count=reviews,
        variant_group=group,
    ).with_units(units)


def _normalize(products):
    from pageone.config import DEFAULT_POLICY
    from pageone.parent_child import normalize_variant_groups
    return normalize_variant_groups(products, DEFAULT_POLICY.parent_child, DEFAULT_POLICY.guardrails)


def _group_totals(products, group="B0PARENT01"):
    members = [p for p in products if p.variant_group == group]
    return (
        sum(p.estimated_monthly_units for p in members),
        round(sum(p.estimated_monthly_revenue for p in members), 2),
    )


# ─── 1. Weights ──────────────────────────────────────────────────────────────

class TestChildWeight:
    def test_formula(self):
        import math
        from pageone.config import DEFAULT_POLICY
        from pageone.parent_child import child_weight
        child = _make_child(1, 10, reviews=90, rating=4.0, price=30.0)
        weight = child_weight(child, 20.0, DEFAULT_POLICY.parent_child)
        assert weight == pytest.approx(math.log(100) * 0.8 * 0.8)

    def test_missing_rating_factor(self):
        import math
        from pageone.config import DEFAULT_POLICY
        from pageone.parent_child import child_weight
        child = _make_child(1, 10, reviews=0, rating=None)
        assert child_weight(child, 20.0, DEFAULT_POLICY.parent_child) == pytest.approx(math.log(10) * 0.85)


# ─── 2. Group conservation ───────────────────────────────────────────────────

class TestNormalizeVariantGroups:
    def test_group_totals_conserved(self):
        children = [
            _make_child(1, 100, reviews=5000, price=25.0),
            _make_child(2, 50, reviews=40, price=19.0),
            _make_child(3, 10, reviews=900, price=22.0),
        ]
        before = _group_totals(children)
        after = _group_totals(_normalize(children))
        assert after == before

    def test_children_with_demand_keep_a_unit(self):
        children = [_make_child(1, 500, reviews=100_000), _make_child(2, 1, reviews=0, rating=None)]
        result = {p.asin: p for p in _normalize(children)}
        assert result["B000000002"].estimated_monthly_units >= 1
        assert sum(p.estimated_monthly_units for p in result.values()) == 501

    def test_review_floor_settled_against_largest(self):
        """Small child is floored to 5; the overshoot comes off the largest child."""
        children = [
            _make_child(1, 20, reviews=10_000, rating=5.0, price=20.0),
            _make_child(2, 5, reviews=10_000, rating=5.0, price=20.0),
            _make_child(3, 5, reviews=25, rating=None, price=60.0),
        ]
        result = {p.asin: p.estimated_monthly_units for p in _normalize(children)}
        assert result["B000000003"] == 5
        assert sum(result.values()) == 30
        assert result["B000000001"] == 12
        assert result["B000000002"] == 13

    def test_singletons_untouched(self):
        products = [_make_child(1, 77, group=None), _make_child(2, 33, group="B0OTHER001")]
        result = _normalize(products)
        assert [p.estimated_monthly_units for p in result] == [77, 33]

    def test_deterministic(self):
        children = [_make_child(i, 10 * i, reviews=37 * i) for i in range(1, 6)]
        first = [p.to_dict() for p in _normalize(children)]
        second = [p.to_dict() for p in _normalize(list(reversed(children)))]
        assert sorted(first, key=lambda d: d["asin"]) == sorted(second, key=lambda d: d["asin"])

    def test_page_shares_recomputed(self):
        children = [_make_child(1, 10), _make_child(2, 30), _make_child(3, 60, group=None)]
        result = _normalize(children)
        assert sum(p.revenue_share_pct for p in result) == pytest.approx(100.0)

    def test_child_handed_revenue_gets_a_unit(self):
        """A sponsored child zeroed earlier still gets revenue from the re-split, so it is floored."""
        from dataclasses import replace
        children = [
            _make_child(1, 3, reviews=15, rating=5.0),
            replace(_make_child(2, 0, reviews=0, rating=1.0), organic_rank=None, appears_sponsored=True),
        ]
        result = {p.asin: p for p in _normalize(children)}
        sponsored = result["B000000002"]
        assert sponsored.estimated_monthly_revenue > 0
        assert sponsored.estimated_monthly_units == 1
        assert result["B000000001"].estimated_monthly_units == 2
        assert _group_totals(list(result.values())) == (3, 60.0)

    def test_unfundable_floor_folds_revenue_into_largest(self):
        from dataclasses import replace
        children = [
            _make_child(1, 1, reviews=15, rating=5.0),
            replace(_make_child(2, 0, reviews=0, rating=1.0), organic_rank=None, appears_sponsored=True),
        ]
        result = {p.asin: p for p in _normalize(children)}
        assert result["B000000002"].estimated_monthly_units == 0
        assert result["B000000002"].estimated_monthly_revenue == 0.0
        assert result["B000000001"].estimated_monthly_units == 1
        assert result["B000000001"].estimated_monthly_revenue == 20.0

    def test_no_child_has_revenue_without_units(self):
        from dataclasses import replace
        children = [_make_child(i, 40 * i, reviews=300 * i) for i in range(1, 5)]
        children += [
            replace(_make_child(i, 0, reviews=0, rating=None), organic_rank=None, appears_sponsored=True)
            for i in range(5, 8)
        ]
        result = _normalize(children)
        assert all(p.estimated_monthly_units >= 1 for p in result if p.estimated_monthly_revenue > 0)
        assert _group_totals(result) == _group_totals(children)
