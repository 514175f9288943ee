"""
Extraction package — turns one captured school page into an ExtractedRecord.

Tier order per field: structured data (JSON-LD) → CSS selectors → text
patterns.  Rankings get their own candidate parser; see rankings.py.
"""
