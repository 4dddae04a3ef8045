"""
Output cache service.
"""

from typing import Any, Dict, Optional, Sequence

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ProfileNotFoundError
from shared.logging import LoggerFactory
from service_output_cache.app.caching import (
    CacheProfileRegistry,
    OutputCacheDeclaration,
    OutputCacheMiddleware,
    output_cache,
)


class OutputCacheService(BaseService):
    """Service exposing cache profiles and the routes that declare output caching."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        declarations: Sequence[OutputCacheDeclaration] = (),
    ):
        super().__init__("output_cache", 8000, config)
        self.profiles = CacheProfileRegistry(self.config.cache_profiles_file)
        self.logger_factory = LoggerFactory(self.service_name)

        self.output_cache = OutputCacheMiddleware(
            profiles=self.profiles,
            logger_factory=self.logger_factory,
            declarations=declarations,
            default_expiration_seconds=self.config.default_expiration_seconds,
            case_sensitive_paths=self.config.case_sensitive_paths,
            metrics=self.metrics if self.config.metrics_enabled else None,
        ).install(self.app)

        self._setup_cache_routes()

        self.app.state.output_cache_service = self

    async def _on_startup(self) -> None:
        if self.config.strict_profiles:
            self.output_cache.validate_profiles(self.app)
        self.logger.info(
            "Output cache ready",
            profiles=len(self.profiles),
            declared_routes=len(self.output_cache.declared_routes(self.app)),
        )

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {"cache_profiles": f"{len(self.profiles)} loaded"}

    def _setup_cache_routes(self):
        """Set up profile and declaration introspection routes."""

        @self.app.get("/api/v1/cache/profiles")
        @output_cache(duration=30, vary_by_query_keys=[])
        async def list_profiles():
            """List registered cache profiles."""
            return {
                "profiles": self.profiles.to_dict(),
                "source": str(self.profiles.path) if self.profiles.path else None,
            }

        @self.app.get("/api/v1/cache/profiles/{name}")
        @output_cache(cache_profile_name="Default")
        async def get_profile(name: str):
            """Get a single cache profile."""
            profile = self.profiles.lookup(name)
            if profile is None:
                raise ProfileNotFoundError(name)
            return {"name": name, "profile": profile.model_dump()}

        @self.app.post("/api/v1/cache/profiles/refresh")
        async def refresh_profiles():
            """Reload cache profiles from disk."""
            self.profiles.refresh()
            self.logger.info("Cache profiles refreshed", profiles=len(self.profiles))
            return {"profiles": len(self.profiles)}

        @self.app.get("/api/v1/cache/routes")
        @output_cache(no_store=True)
        async def list_declared_routes():
            """List routes that declare output caching with their compiled policies."""
            return {"routes": self.output_cache.declared_routes(self.app)}


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = OutputCacheService(config)
    return service.app


if __name__ == "__main__":
    service = OutputCacheService()
    service.run()
