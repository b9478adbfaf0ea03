"""
ORM models for the workflow tracker: tenants, work items, production
releases, inspection templates, inspection records and their steps.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

# Re-export commonly used models for convenience and to ensure import side-effects
# register all mapped classes with SQLAlchemy metadata.

from .tenancy import Tenant  # noqa: F401
from .production import (  # noqa: F401
    WorkItem,
    ReleaseRecord,
)
from .quality import (  # noqa: F401
    InspectionTemplate,
    InspectionRecord,
    StepResult,
)
