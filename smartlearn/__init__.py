# SmartLearn package
"""
SmartLearn - PDF study assistant backend
"""

from .config import settings

__all__ = [
    "settings",
]
