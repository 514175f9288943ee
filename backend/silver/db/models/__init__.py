"""
Models package — re-exports Base and all models.

Import models here so `Base.metadata` picks up every table.

When adding a new model:
    1. Create `silver/db/models/<table_name>.py`
    2. Import it here
"""

from silver.db.models.base import Base
from silver.db.models.silver_record import SilverRecord

__all__ = [
    "Base",
    "SilverRecord",
]
