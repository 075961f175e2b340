"""
Anonymous response persistence module.

Kept lightweight: no ORM imports at package import time.
"""

__all__: list[str] = []
