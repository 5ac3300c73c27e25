"""
Shared utilities for blxcore.
"""
from dataclasses import fields
from typing import Any


# Classes --------------------------------------------------------------------------------------------------------------
class Config:
    """
    Config parent class that can conveniently set attributes from CLI args
    """
    @classmethod
    def from_obj(cls, obj: Any) -> 'Config':
        return cls(**{f.name: val for f in fields(cls) if (val := getattr(obj, f.name, None)) is not None})
