"""
Output caching package.

Routes declare caching intent with ``output_cache``; the declaration
compiles it into ordered policies that the middleware applies per request.
Storage of cached bytes is left to the layer that consumes the context.
"""

from .context import OutputCacheContext
from .declaration import OutputCacheDeclaration, get_output_cache_declaration, output_cache
from .filter import OutputCacheFilter
from .middleware import OutputCacheMiddleware
from .policies import (
    ExpirationPolicy,
    NoStorePolicy,
    OutputCachePolicy,
    ProfilePolicy,
    VaryByQueryPolicy,
)
from .profiles import CacheProfile, CacheProfileRegistry

__all__ = [
    "CacheProfile",
    "CacheProfileRegistry",
    "ExpirationPolicy",
    "NoStorePolicy",
    "OutputCacheContext",
    "OutputCacheDeclaration",
    "OutputCacheFilter",
    "OutputCacheMiddleware",
    "OutputCachePolicy",
    "ProfilePolicy",
    "VaryByQueryPolicy",
    "get_output_cache_declaration",
    "output_cache",
]
