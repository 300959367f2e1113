# backend/stockdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in stockdb/apps/*/models.py.
"""

from .apps.catalog import models as catalog_models            # part master + quantity class
from .apps.stock import models as stock_models                # engineer stock ledger + adjustments
from .apps.requests import models as request_models           # monthly part requests
from .apps.usage import models as usage_models                # field usage reports

__all__ = [
    "catalog_models",
    "stock_models",
    "request_models",
    "usage_models",
]
