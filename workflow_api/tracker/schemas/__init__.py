"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by area (production, quality, drawing batches, realtime)
and also include common reusable models such as standard responses.
"""

from .common import MessageResponse  # noqa: F401
