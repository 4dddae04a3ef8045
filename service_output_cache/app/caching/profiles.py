"""
Named cache profiles referenced from route declarations.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
import json
import threading

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import ProfileNotFoundError
from shared.logging import get_logger


DEFAULT_DATA_FILE = Path(__file__).resolve().parent / "data" / "cache_profiles.json"


class CacheProfile(BaseModel):
    """Bundle of default cache settings. Unset fields contribute nothing."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    duration: Optional[int] = Field(default=None, ge=0)
    no_store: Optional[bool] = None
    vary_by_query_keys: Optional[List[str]] = None


class CacheProfileRegistry:
    """
    In-memory registry of cache profiles, optionally seeded from a JSON file.

    The file layout is ``{"profiles": {"<name>": {...}}}``. Profile names are
    case-insensitive. A missing or malformed file yields an empty registry,
    and entries that fail validation are skipped.
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        *,
        profiles: Optional[Dict[str, Union[CacheProfile, Dict[str, Any]]]] = None,
    ):
        self.logger = get_logger("output_cache.profiles")
        self._lock = threading.Lock()
        self._profiles: Dict[str, CacheProfile] = {}

        if profiles is not None and config_path is None:
            self._path: Optional[Path] = None
        else:
            self._path = Path(config_path) if config_path else DEFAULT_DATA_FILE
            self._profiles = self._load()

        for name, profile in (profiles or {}).items():
            self.register(name, profile)

    @classmethod
    def from_profiles(cls, profiles: Dict[str, Union[CacheProfile, Dict[str, Any]]]) -> "CacheProfileRegistry":
        """Build a registry from in-memory definitions instead of a file."""
        return cls(profiles=profiles)

    @property
    def path(self) -> Optional[Path]:
        """Return the resolved path to the data file."""
        return self._path

    def refresh(self) -> None:
        """Reload profiles from disk, dropping in-memory registrations."""
        if self._path is None:
            return
        profiles = self._load()
        with self._lock:
            self._profiles = profiles

    def register(self, name: str, profile: Union[CacheProfile, Dict[str, Any]]) -> CacheProfile:
        """Add or replace a profile."""
        if not isinstance(profile, CacheProfile):
            profile = CacheProfile.model_validate(profile)
        with self._lock:
            self._profiles[name.casefold()] = profile
        return profile

    def lookup(self, name: str) -> Optional[CacheProfile]:
        """Return the profile registered under ``name``, or None."""
        return self._profiles.get(name.casefold())

    def names(self) -> List[str]:
        return sorted(self._profiles.keys())

    def ensure_profiles(self, names: Iterable[str]) -> None:
        """Raise ProfileNotFoundError for the first name that is not registered."""
        for name in names:
            if self.lookup(name) is None:
                raise ProfileNotFoundError(name)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: profile.model_dump() for name, profile in sorted(self._profiles.items())}

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def __len__(self) -> int:
        return len(self._profiles)

    def _load(self) -> Dict[str, CacheProfile]:
        """Read profiles from disk. Returns an empty mapping on failure."""
        if not self._path.exists():
            self.logger.info("No cache profile file found", path=str(self._path))
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (ValueError, OSError) as exc:
            self.logger.warning("Failed to parse cache profile file", path=str(self._path), error=str(exc))
            return {}

        raw_profiles = payload.get("profiles", {}) if isinstance(payload, dict) else {}
        profiles: Dict[str, CacheProfile] = {}
        for name, definition in raw_profiles.items():
            try:
                profiles[name.casefold()] = CacheProfile.model_validate(definition)
            except ValidationError as exc:
                self.logger.warning("Skipping invalid cache profile", profile=name, error=str(exc))
        return profiles
