"""Core (UI-agnostic) power-sector analytics logic.

This package contains:
- calendar key parsing and arithmetic (YYYY-MM-DD keys, India fiscal years)
- series ingestion (CSV text / XLSX bytes -> date->value maps)
- aggregation (daily, rolling, weekly, monthly, fiscal-year) and growth
- statistics (control bands, correlation) and multi-series alignment
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
