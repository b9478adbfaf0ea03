"""
Core application utilities for settings, security and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- Bearer token helpers
- Dependency helpers (tenant extraction, tenant-scoped DB session, acting user)
- Logging configuration with request context
"""
