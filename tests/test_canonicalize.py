"""
Unit tests for the front of the pipeline:
    - Listing.from_raw() alias parsing (pageone/models/listing.py)
    - normalize_appearances() / canonicalize() (pageone/appearances.py)
    - enforce_page_cap() (pageone/page_cap.py)

Run with:
    pytest tests/test_canonicalize.py -v
"""

import pytest

# ─── Helpers ─────────────────────────────────────────────────────────────────

def _asin(i):
    return f"B{i:09d}"


def _make_listing(asin, slot, sponsored=False, price=20.0, reviews=100, rating=4.5, **extra):
    from pageone.models.listing import Listing
    return Listing(
        asin=asin,
        slot=slot,
        is_sponsored=sponsored,
        price=price,
        rating=rating,
        review_count=reviews,
        **extra,
    )


def _canonical(listings):
    from pageone.appearances import canonicalize, normalize_appearances
    return canonicalize(normalize_appearances(listings))


# ─── 1. Listing.from_raw ─────────────────────────────────────────────────────

class TestListingFromRaw:
    def test_aliases_are_mapped(self):
        from pageone.models.listing import Listing
        listing = Listing.from_raw({
            "ASIN": " b0abcdefgh ",
            "position": "3",
            "sponsored": True,
            "price": {"value": 19.99, "currency": "USD"},
            "reviews": "1,234",
            "rating": 4.6,
            "bestsellers_rank": [{"rank": 55, "category": "Kitchen"}],
            "parent_asin": "B0PARENT01",
            "main_category": "Home",
        })
        assert listing.asin == "B0ABCDEFGH"
        assert listing.slot == 3
        assert listing.is_sponsored is True
        assert listing.price == pytest.approx(19.99)
        assert listing.review_count == 1234
        assert listing.bsr == 55
        assert listing.variant_group == "B0PARENT01"
        assert listing.category == "Home"

    def test_price_string_with_currency(self):
        from pageone.models.listing import Listing
        listing = Listing.from_raw({"asin": "B000000001", "price": "$1,299.00"})
        assert listing.price == pytest.approx(1299.0)

    def test_out_of_range_values_dropped(self):
        from pageone.models.listing import Listing
        listing = Listing.from_raw({"asin": "B000000001", "rating": 7, "reviews": -3, "price": -1})
        assert listing.rating is None
        assert listing.review_count is None
        assert listing.price is None

    def test_missing_sponsored_flag_is_organic(self):
        from pageone.models.listing import Listing
        assert Listing.from_raw({"asin": "B000000001"}).is_sponsored is False


# ─── 2. Normalizer ───────────────────────────────────────────────────────────

class TestNormalizeAppearances:
    def test_malformed_identifiers_dropped(self):
        from pageone.appearances import normalize_appearances
        listings = [
            _make_listing("B000000001", 1),
            _make_listing("B0SHORT", 2),
            _make_listing("B00-000001", 3),
            _make_listing("", 4),
        ]
        appearances = normalize_appearances(listings)
        assert [a.asin for a in appearances] == ["B000000001"]

    def test_missing_slot_uses_arrival_index(self):
        from pageone.appearances import normalize_appearances
        listings = [_make_listing("B000000001", None), _make_listing("B000000002", None)]
        assert [a.slot for a in normalize_appearances(listings)] == [1, 2]

    def test_drop_is_recorded_as_event(self):
        from pageone.appearances import normalize_appearances
        from pageone.telemetry import TelemetryRecorder
        telemetry = TelemetryRecorder()
        normalize_appearances([_make_listing("nope", 1)], telemetry=telemetry)
        assert telemetry.named("normalize.dropped_invalid")[0].payload["count"] == 1


# ─── 3. Canonicalizer ────────────────────────────────────────────────────────

class TestCanonicalize:
    def test_repeat_appearance_scenario(self):
        """Organic slot 2 plus sponsored slots 5 and 9 collapse into one record."""
        listings = [
            _make_listing("B000000009", 1),
            _make_listing("B000000001", 2),
            _make_listing("B000000001", 9, sponsored=True),
            _make_listing("B000000001", 5, sponsored=True),
        ]
        products = {p.asin: p for p in _canonical(listings)}
        product = products["B000000001"]
        assert product.organic_rank == 2
        assert product.appears_sponsored is True
        assert product.sponsored_positions == (5, 9)
        assert product.appearance_count == 3
        assert product.algorithm_boosted is True
        assert product.page_position == 2

    def test_single_appearance_not_boosted(self):
        products = _canonical([_make_listing("B000000001", 4)])
        assert products[0].algorithm_boosted is False
        assert products[0].appears_sponsored is False
        assert products[0].sponsored_positions == ()

    def test_sponsored_only_has_no_organic_slot(self):
        products = _canonical([_make_listing("B000000001", 3, sponsored=True)])
        assert products[0].organic_rank is None
        assert products[0].organic_slot is None

    def test_representative_listing_is_best_slot(self):
        listings = [
            _make_listing("B000000001", 3, price=10.0),
            _make_listing("B000000001", 1, sponsored=True, price=12.0),
        ]
        product = _canonical(listings)[0]
        assert product.page_position == 1
        assert product.price == pytest.approx(12.0)
        assert product.organic_slot == 3

    def test_output_independent_of_arrival_order(self):
        listings = [
            _make_listing("B000000002", 7, price=30.0),
            _make_listing("B000000001", 2),
            _make_listing("B000000002", 4, sponsored=True, price=25.0),
        ]
        forward = [p.to_dict() for p in _canonical(listings)]
        backward = [p.to_dict() for p in _canonical(list(reversed(listings)))]
        assert forward == backward

    def test_signals_resolved(self):
        listings = [_make_listing("B000000001", 1, brand="Ninja", is_prime=True)]
        product = _canonical(listings)[0]
        assert product.brand.brand == "Ninja"
        assert product.brand.status.value == "canonical"
        assert product.fulfillment.value == "FBA"


# ─── 4. Page cap ─────────────────────────────────────────────────────────────

class TestPageCap:
    def test_exactly_49_dense_ranks(self):
        from pageone.page_cap import enforce_page_cap
        listings = [_make_listing(_asin(i), i) for i in range(1, 61)]
        listings += [_make_listing(_asin(100 + i), 60 + i, sponsored=True) for i in range(1, 4)]
        capped = enforce_page_cap(_canonical(listings))

        ranks = sorted(p.organic_rank for p in capped if p.organic_rank is not None)
        assert ranks == list(range(1, 50))
        assert sum(1 for p in capped if p.organic_rank is None) == 3
        assert len(capped) == 52

    def test_sponsored_anywhere_never_ranked(self):
        from pageone.page_cap import enforce_page_cap
        listings = [
            _make_listing("B000000001", 1),
            _make_listing("B000000002", 2),
            _make_listing("B000000002", 6, sponsored=True),
            _make_listing("B000000003", 7),
        ]
        capped = {p.asin: p for p in enforce_page_cap(_canonical(listings))}
        assert capped["B000000002"].organic_rank is None
        assert capped["B000000001"].organic_rank == 1
        assert capped["B000000003"].organic_rank == 2

    def test_sponsored_never_backfill(self):
        from pageone.page_cap import enforce_page_cap
        listings = [_make_listing(_asin(i), i) for i in range(1, 4)]
        listings += [_make_listing(_asin(50 + i), 3 + i, sponsored=True) for i in range(1, 60)]
        capped = enforce_page_cap(_canonical(listings), page_size=49)
        assert sum(1 for p in capped if p.organic_rank is not None) == 3

    def test_ranks_follow_slots(self):
        from pageone.page_cap import enforce_page_cap
        listings = [
            _make_listing("B000000003", 9),
            _make_listing("B000000001", 1),
            _make_listing("B000000002", 4),
        ]
        capped = enforce_page_cap(_canonical(listings))
        order = [p.asin for p in sorted(capped, key=lambda p: p.organic_rank)]
        assert order == ["B000000001", "B000000002", "B000000003"]

    def test_cap_event_counts(self):
        from pageone.page_cap import enforce_page_cap
        from pageone.telemetry import TelemetryRecorder
        telemetry = TelemetryRecorder()
        listings = [_make_listing(_asin(i), i) for i in range(1, 55)]
        enforce_page_cap(_canonical(listings), telemetry=telemetry)
        payload = telemetry.named("page_cap.applied")[0].payload
        assert payload["pre_organic"] == 54
        assert payload["post_organic"] == 49
        assert payload["dropped"] == 5
