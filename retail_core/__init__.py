"""Core (UI-agnostic) shopper dashboard logic.

This package contains:
- data loading (CSV -> pandas record store)
- filter criteria normalization and the filter engine
- page compute functions (JSON-serializable payloads)
- the date range sync controller and filter bar state
- chart helpers (Altair -> Vega-Lite spec dict)
"""
