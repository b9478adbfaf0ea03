"""
API route modules for the workflow tracker.

This package contains subrouters for:
- Production: work items, quantity ledger and releases
- Quality: inspections, overrides and inspection templates
- Drawing batches: batch text parse/format and spreadsheet paste

Routers are included from tracker.api.main (under the /api/v1 prefix).
"""
