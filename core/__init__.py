"""Core (UI-agnostic) disbursement-curve logic.

This package contains:
- filter specifications and selection scopes
- the bounded comparison set (add / remove / combine / labels)
- band payload normalization (aliased quantile fields -> canonical table)
- the per-project series cache and the comparison fetch layer
- shared horizontal domain (KMAX) reconciliation
- payload builders and chart helpers (Altair -> Vega-Lite spec dict)
"""
