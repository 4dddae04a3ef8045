"""
Request-scoped output cache state.

Policies read and write an ``OutputCacheContext``; the middleware owns it for
the duration of one request and hands it to the storage layer afterwards.
"""

from __future__ import annotations

import hashlib
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .profiles import CacheProfileRegistry


NO_STORE = "no_store"
VARY_BY_QUERY_KEYS = "vary_by_query_keys"
EXPIRATION = "expiration"

CACHEABLE_METHODS = ("GET", "HEAD")
ALL_QUERY_KEYS = "*"
CACHE_KEY_PREFIX = "output_cache"
DEFAULT_EXPIRATION = timedelta(seconds=60)

QueryItems = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class OutputCacheContext:
    """Mutable caching state for a single request/response cycle."""

    def __init__(
        self,
        *,
        profiles: Optional["CacheProfileRegistry"] = None,
        default_expiration: timedelta = DEFAULT_EXPIRATION,
        case_sensitive_paths: bool = False,
    ):
        self.profiles = profiles
        self.default_expiration = default_expiration
        self.case_sensitive_paths = case_sensitive_paths

        self.request_eligible = True
        self.enable_output_caching = True
        self.allow_cache_lookup = True
        self.allow_cache_storage = True

        self._no_store = False
        self._vary_by_query_keys: Optional[Tuple[str, ...]] = None
        self._response_expiration: Optional[timedelta] = None
        self._explicit: Set[str] = set()
        self.missing_profiles: List[str] = []
        self.cache_key: Optional[str] = None

    @classmethod
    def for_request(
        cls,
        method: str,
        headers: Mapping[str, str],
        **kwargs: Any,
    ) -> "OutputCacheContext":
        """
        Build a context seeded with the default request policy.

        Only GET and HEAD requests without credentials are eligible for
        output caching.
        """
        context = cls(**kwargs)
        eligible = method.upper() in CACHEABLE_METHODS and not _has_header(headers, "authorization")
        context.request_eligible = eligible
        context.enable_output_caching = eligible
        context.allow_cache_lookup = eligible
        context.allow_cache_storage = eligible
        return context

    # -- explicit-field tracking -------------------------------------------------

    def is_explicit(self, field: str) -> bool:
        """Return True when ``field`` was set by an explicit policy."""
        return field in self._explicit

    def _mark(self, field: str, explicit: bool) -> None:
        if explicit:
            self._explicit.add(field)

    # -- no-store ----------------------------------------------------------------

    @property
    def no_store(self) -> bool:
        return self._no_store

    def set_no_store(self, *, explicit: bool = True) -> None:
        """Disable caching for this response. Nothing re-enables it."""
        self._no_store = True
        self.enable_output_caching = False
        self.allow_cache_lookup = False
        self.allow_cache_storage = False
        self._mark(NO_STORE, explicit)

    # -- vary by query -----------------------------------------------------------

    @property
    def vary_by_query_keys(self) -> Optional[Tuple[str, ...]]:
        """Query keys in the cache key; None means every key, () means none."""
        return self._vary_by_query_keys

    def set_vary_by_query_keys(self, keys: Sequence[str], *, explicit: bool = True) -> None:
        self._vary_by_query_keys = tuple(keys)
        self._mark(VARY_BY_QUERY_KEYS, explicit)

    # -- expiration --------------------------------------------------------------

    @property
    def response_expiration(self) -> Optional[timedelta]:
        return self._response_expiration

    def set_expiration(self, duration: timedelta, *, explicit: bool = True) -> None:
        self._response_expiration = duration
        self._mark(EXPIRATION, explicit)

    @property
    def effective_expiration(self) -> timedelta:
        if self._response_expiration is not None:
            return self._response_expiration
        return self.default_expiration

    @property
    def expiration_seconds(self) -> int:
        return int(self.effective_expiration.total_seconds())

    # -- request/response helpers ------------------------------------------------

    def build_cache_key(self, method: str, path: str, query_items: Optional[QueryItems] = None) -> str:
        """Derive the storage key from the method, path and vary-selected query pairs."""
        normalized_path = path if self.case_sensitive_paths else path.upper()
        parts = [method.upper(), normalized_path]

        selected = self._select_query_items(query_items)
        if selected:
            parts.append("Q" + "&".join(f"{key}={value}" for key, value in selected))

        digest = hashlib.sha256("\x1e".join(parts).encode("utf-8")).hexdigest()
        return f"{CACHE_KEY_PREFIX}:{digest}"

    def _select_query_items(self, query_items: Optional[QueryItems]) -> List[Tuple[str, str]]:
        if not query_items:
            return []

        pairs = query_items.items() if isinstance(query_items, Mapping) else query_items
        # Key names are folded so that spellings of one vary key share an entry.
        items = [(str(key).casefold(), str(value)) for key, value in pairs]

        keys = self._vary_by_query_keys
        if keys is None or ALL_QUERY_KEYS in keys:
            selected = items
        else:
            wanted = {key.casefold() for key in keys}
            selected = [item for item in items if item[0] in wanted]

        return sorted(selected)

    def finalize_response(self, status_code: int, headers: Mapping[str, str]) -> None:
        """Apply storage rules that depend on the produced response."""
        if status_code != 200 or _has_header(headers, "set-cookie"):
            self.allow_cache_storage = False

    def cache_control_header(self) -> Optional[str]:
        """Cache-Control value for the response, or None for ineligible requests."""
        if not self.request_eligible:
            return None
        if not self.enable_output_caching or not self.allow_cache_storage:
            return "no-store"
        return f"public, max-age={self.expiration_seconds}"

    @property
    def decision(self) -> str:
        if not self.request_eligible:
            return "ineligible"
        if not self.enable_output_caching or not self.allow_cache_storage:
            return "bypassed"
        return "cacheable"


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    return any(key.lower() == name for key in headers.keys())
