"""
This module contains the containers of the alignment feature model: the features themselves, the arena that owns
them, and the per-strand sequence aggregates that group them.
"""
