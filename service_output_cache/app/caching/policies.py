"""
Output caching policies.

Each policy is an immutable value applied to an ``OutputCacheContext``.
Applying the same policy twice to one context leaves it in the same state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, ClassVar, Dict, Tuple

from shared.errors import InvalidArgumentError, ProfileNotFoundError
from .context import EXPIRATION, NO_STORE, VARY_BY_QUERY_KEYS, OutputCacheContext


class OutputCachePolicy(ABC):
    """A single caching behaviour applied to a request/response context."""

    kind: ClassVar[str] = "policy"

    @abstractmethod
    def apply(self, context: OutputCacheContext) -> None:
        """Apply this policy to ``context``."""

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class NoStorePolicy(OutputCachePolicy):
    """Prevents the response from being cached."""

    kind: ClassVar[str] = "no_store"

    def apply(self, context: OutputCacheContext) -> None:
        context.set_no_store()


@dataclass(frozen=True)
class ProfilePolicy(OutputCachePolicy):
    """
    Merges a named profile's settings into the context.

    Fields that an explicit policy already set are left alone. An unknown
    profile raises ``ProfileNotFoundError`` before the context is touched.
    """

    profile_name: str
    kind: ClassVar[str] = "profile"

    def apply(self, context: OutputCacheContext) -> None:
        registry = context.profiles
        profile = registry.lookup(self.profile_name) if registry is not None else None
        if profile is None:
            raise ProfileNotFoundError(self.profile_name)

        if profile.no_store and not context.is_explicit(NO_STORE):
            context.set_no_store(explicit=False)

        if profile.vary_by_query_keys is not None and not context.is_explicit(VARY_BY_QUERY_KEYS):
            context.set_vary_by_query_keys(profile.vary_by_query_keys, explicit=False)

        if profile.duration is not None and not context.is_explicit(EXPIRATION):
            context.set_expiration(timedelta(seconds=profile.duration), explicit=False)

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "profile": self.profile_name}


@dataclass(frozen=True)
class VaryByQueryPolicy(OutputCachePolicy):
    """Selects the query keys that take part in the cache key. ``()`` ignores the query string."""

    query_keys: Tuple[str, ...] = ()
    kind: ClassVar[str] = "vary_by_query"

    def __post_init__(self):
        keys = self.query_keys
        if isinstance(keys, str):
            keys = (keys,)
        object.__setattr__(self, "query_keys", tuple(keys))

    def apply(self, context: OutputCacheContext) -> None:
        context.set_vary_by_query_keys(self.query_keys)

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "query_keys": list(self.query_keys)}


@dataclass(frozen=True)
class ExpirationPolicy(OutputCachePolicy):
    """Sets how long the cached response stays fresh."""

    duration: timedelta
    kind: ClassVar[str] = "expiration"

    def __post_init__(self):
        if not isinstance(self.duration, timedelta) or self.duration < timedelta(0):
            raise InvalidArgumentError("duration", "expected a non-negative timedelta")

    @classmethod
    def from_seconds(cls, seconds: int) -> "ExpirationPolicy":
        return cls(timedelta(seconds=seconds))

    def apply(self, context: OutputCacheContext) -> None:
        context.set_expiration(self.duration)

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "seconds": int(self.duration.total_seconds())}
