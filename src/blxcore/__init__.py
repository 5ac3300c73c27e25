"""
Top-level module, alignment feature data model with transcript reconstruction and identity scoring.
"""


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class BlxWarning(Warning):
    """Base class for all non-fatal diagnostics issued while loading and finalising alignment data."""
