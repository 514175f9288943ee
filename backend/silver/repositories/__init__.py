"""
Repositories package — data-access layer.

Each repository file handles all DB operations for one domain entity.
Repositories do NOT hold extraction or validation rules.

Convention:
    - One file per aggregate root (silver_records.py)
    - All functions accept `AsyncSession` as the first argument
    - Use `flush()` internally; commit/rollback belongs to the caller
      (`async with session.begin()` in the batch runner and tasks)
"""
