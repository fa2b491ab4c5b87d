"""Communities domain package exposing the API router."""

from nexus.communities.api import router

__all__ = ["router"]
