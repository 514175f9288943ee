"""
Batch pipeline package.

    errors.py   — exception hierarchy rooted at SilverError
    context.py  — per-batch state and the BatchResult summary
    runner.py   — BatchRunner: worker pool + serialized validate/persist
"""
