# backend/modules/tax/__init__.py

"""
Tax jurisdiction module.

Point-in-polygon jurisdiction resolution, point-in-time rate timelines with
an append-only mutation ledger, and composite sales-tax computation.
"""
