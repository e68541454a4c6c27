"""
API v1 routers.
"""

from pm_tracker.api.v1 import health, specs, stories

__all__ = ["health", "specs", "stories"]
