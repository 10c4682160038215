"""
PageOne - Marketplace page-one demand allocation engine

Estimates how a keyword's first results page splits its monthly demand
(units and revenue) across the listings shown, from surface signals only.

Components:
- appearances / page_cap: dedupe repeat hits, cap the organic set at 49
- demand_estimator / calibration: rough page total, pulled into trusted bands
- allocator / guardrails / scaling_stages: per-listing split, floors, page scaling
- parent_child / validator: variant re-split and invariant checks
- keyword_calibration / history_blend: optional external adjustments
- snapshot / stores: persistable output and Supabase-backed lookups
"""

# Lazy imports keep `import pageone` free of the store dependencies
def __getattr__(name):
    if name in ("build_page", "build_page_report", "PageResult"):
        from pageone import pipeline
        return getattr(pipeline, name)

    if name in ("apply_calibration", "apply_calibration_sync"):
        from pageone import keyword_calibration
        return getattr(keyword_calibration, name)

    if name in ("blend_with_history", "HistoryAverage"):
        from pageone import history_blend
        return getattr(history_blend, name)

    if name in ("build_snapshot", "PageSnapshot"):
        from pageone import snapshot
        return getattr(snapshot, name)

    if name in ("SupabaseProfileStore", "SupabaseHistoryStore", "StaticProfileStore", "create_supabase_client"):
        from pageone import stores
        return getattr(stores, name)

    if name in ("AllocationPolicy", "DEFAULT_POLICY"):
        from pageone import config
        return getattr(config, name)

    if name in ("PageOneError", "HardInvariantViolation", "ProfileLookupError"):
        from pageone import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'pageone' has no attribute '{name}'")

__all__ = [
    # Pipeline
    "build_page",
    "build_page_report",
    "PageResult",
    # External adjustments
    "apply_calibration",
    "apply_calibration_sync",
    "blend_with_history",
    "HistoryAverage",
    # Output
    "build_snapshot",
    "PageSnapshot",
    # Stores
    "SupabaseProfileStore",
    "SupabaseHistoryStore",
    "StaticProfileStore",
    "create_supabase_client",
    # Config / errors
    "AllocationPolicy",
    "DEFAULT_POLICY",
    "PageOneError",
    "HardInvariantViolation",
    "ProfileLookupError",
]
