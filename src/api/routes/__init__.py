"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import activity, brands, jobs, metrics, reviews, sources

__all__ = [
    "activity",
    "brands",
    "jobs",
    "metrics",
    "reviews",
    "sources",
]
