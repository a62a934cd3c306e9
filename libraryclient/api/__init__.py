"""Library API façade."""

from libraryclient.api.endpoints import API_ENDPOINT_PREFIXES, ApiEndpoints
from libraryclient.api.facade import LibraryApi

__all__ = ["API_ENDPOINT_PREFIXES", "ApiEndpoints", "LibraryApi"]
