"""Route modules."""

from .jobs import router as jobs_router
from .segments import router as segments_router

__all__ = ["jobs_router", "segments_router"]
