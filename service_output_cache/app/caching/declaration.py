"""
Route-level output cache declarations.

A declaration records the caching intent of one route and compiles it, once,
into an ordered tuple of policies:

1. ``no_store`` set and true -> NoStorePolicy
2. ``cache_profile_name`` set -> ProfilePolicy
3. ``vary_by_query_keys`` set (an empty sequence counts) -> VaryByQueryPolicy
4. ``duration`` set (zero counts) -> ExpirationPolicy

``None`` always means "not specified". An explicit ``no_store=False`` emits
nothing, the same as leaving it unset.
"""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TypeVar

from shared.errors import InvalidArgumentError
from .filter import OutputCacheFilter, LoggerFactoryProtocol
from .policies import (
    ExpirationPolicy,
    NoStorePolicy,
    OutputCachePolicy,
    ProfilePolicy,
    VaryByQueryPolicy,
)


ENDPOINT_ATTRIBUTE = "__output_cache__"

EndpointT = TypeVar("EndpointT", bound=Callable[..., Any])


class OutputCacheDeclaration:
    """Caching intent attached to a route; immutable once its policies are compiled."""

    def __init__(
        self,
        *,
        duration: Optional[int] = None,
        no_store: Optional[bool] = None,
        vary_by_query_keys: Optional[Sequence[str]] = None,
        cache_profile_name: Optional[str] = None,
        order: int = 0,
    ):
        self._duration: Optional[int] = None
        self._no_store: Optional[bool] = None
        self._vary_by_query_keys: Optional[Tuple[str, ...]] = None
        self._cache_profile_name: Optional[str] = None
        self._order = 0
        self._policies: Optional[Tuple[OutputCachePolicy, ...]] = None
        self._lock = threading.Lock()

        self.duration = duration
        self.no_store = no_store
        self.vary_by_query_keys = vary_by_query_keys
        self.cache_profile_name = cache_profile_name
        self.order = order

    @property
    def duration(self) -> Optional[int]:
        """Seconds the response is cached for."""
        return self._duration

    @duration.setter
    def duration(self, seconds: Optional[int]) -> None:
        self._ensure_mutable("duration")
        if seconds is not None and (isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0):
            raise InvalidArgumentError("duration", "expected a non-negative integer number of seconds")
        self._duration = seconds

    @property
    def no_store(self) -> Optional[bool]:
        """When true the response is never cached."""
        return self._no_store

    @no_store.setter
    def no_store(self, value: Optional[bool]) -> None:
        self._ensure_mutable("no_store")
        if value is not None and not isinstance(value, bool):
            raise InvalidArgumentError("no_store", "expected a boolean")
        self._no_store = value

    @property
    def vary_by_query_keys(self) -> Optional[Tuple[str, ...]]:
        return self._vary_by_query_keys

    @vary_by_query_keys.setter
    def vary_by_query_keys(self, keys: Optional[Sequence[str]]) -> None:
        self._ensure_mutable("vary_by_query_keys")
        if keys is None:
            self._vary_by_query_keys = None
            return
        if isinstance(keys, str):
            keys = (keys,)
        keys = tuple(keys)
        if not all(isinstance(key, str) for key in keys):
            raise InvalidArgumentError("vary_by_query_keys", "expected a sequence of strings")
        self._vary_by_query_keys = keys

    @property
    def cache_profile_name(self) -> Optional[str]:
        return self._cache_profile_name

    @cache_profile_name.setter
    def cache_profile_name(self, name: Optional[str]) -> None:
        self._ensure_mutable("cache_profile_name")
        if name is not None and not isinstance(name, str):
            raise InvalidArgumentError("cache_profile_name", "expected a string")
        self._cache_profile_name = name

    @property
    def order(self) -> int:
        """Position among sibling declarations; lower runs first."""
        return self._order

    @order.setter
    def order(self, value: int) -> None:
        self._ensure_mutable("order")
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgumentError("order", "expected an integer")
        self._order = value

    @property
    def is_reusable(self) -> bool:
        return True

    @property
    def is_compiled(self) -> bool:
        return self._policies is not None

    @property
    def policies(self) -> Tuple[OutputCachePolicy, ...]:
        """The compiled policies; built on first access and shared afterwards."""
        policies = self._policies
        if policies is None:
            with self._lock:
                if self._policies is None:
                    self._policies = self._compile()
                policies = self._policies
        return policies

    def _compile(self) -> Tuple[OutputCachePolicy, ...]:
        policies = []

        if self._no_store:
            policies.append(NoStorePolicy())

        if self._cache_profile_name is not None:
            policies.append(ProfilePolicy(self._cache_profile_name))

        if self._vary_by_query_keys is not None:
            policies.append(VaryByQueryPolicy(self._vary_by_query_keys))

        if self._duration is not None:
            policies.append(ExpirationPolicy(timedelta(seconds=self._duration)))

        return tuple(policies)

    def _ensure_mutable(self, field: str) -> None:
        if self._policies is not None:
            raise InvalidArgumentError(field, "declaration cannot change after its policies are compiled")

    def create_instance(self, logger_factory: Optional[LoggerFactoryProtocol]) -> OutputCacheFilter:
        """Build the runtime filter that applies this declaration's policies."""
        if logger_factory is None:
            raise InvalidArgumentError("logger_factory", "a logging facility is required")
        return OutputCacheFilter(logger_factory, self)

    def describe(self) -> Dict[str, Any]:
        return {
            "order": self._order,
            "duration": self._duration,
            "no_store": self._no_store,
            "vary_by_query_keys": list(self._vary_by_query_keys) if self._vary_by_query_keys is not None else None,
            "cache_profile_name": self._cache_profile_name,
            "policies": [policy.describe() for policy in self.policies],
        }

    def __call__(self, endpoint: EndpointT) -> EndpointT:
        """Attach this declaration to a route endpoint."""
        if getattr(endpoint, ENDPOINT_ATTRIBUTE, None) is not None:
            raise InvalidArgumentError(
                "endpoint",
                "an output cache declaration is already attached",
                {"endpoint": getattr(endpoint, "__qualname__", repr(endpoint))},
            )
        setattr(endpoint, ENDPOINT_ATTRIBUTE, self)
        return endpoint

    def __repr__(self) -> str:
        return (
            f"OutputCacheDeclaration(duration={self._duration!r}, no_store={self._no_store!r}, "
            f"vary_by_query_keys={self._vary_by_query_keys!r}, "
            f"cache_profile_name={self._cache_profile_name!r}, order={self._order!r})"
        )


def output_cache(
    *,
    duration: Optional[int] = None,
    no_store: Optional[bool] = None,
    vary_by_query_keys: Optional[Sequence[str]] = None,
    cache_profile_name: Optional[str] = None,
    order: int = 0,
) -> OutputCacheDeclaration:
    """
    Declare output caching for a route.

    Place it below the FastAPI route decorator::

        @app.get("/items/{item_id}")
        @output_cache(duration=60, vary_by_query_keys=["fields"])
        async def read_item(item_id: int): ...
    """
    return OutputCacheDeclaration(
        duration=duration,
        no_store=no_store,
        vary_by_query_keys=vary_by_query_keys,
        cache_profile_name=cache_profile_name,
        order=order,
    )


def get_output_cache_declaration(endpoint: Any) -> Optional[OutputCacheDeclaration]:
    """Return the declaration attached to ``endpoint``, if any."""
    declaration = getattr(endpoint, ENDPOINT_ATTRIBUTE, None)
    if isinstance(declaration, OutputCacheDeclaration):
        return declaration
    return None
