"""HTTP surface for the equipment engine."""

from .router import router

__all__ = ["router"]
