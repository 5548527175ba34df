"""reviewflow - review lifecycle, audit ledger and rollups for business records."""

__version__ = "0.1.0"
