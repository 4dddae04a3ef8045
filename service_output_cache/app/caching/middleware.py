"""
Output caching middleware for FastAPI.
"""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

from fastapi import FastAPI, Request
from starlette.routing import BaseRoute, Match

from shared.logging import LoggerFactory, set_route
from .context import OutputCacheContext
from .declaration import OutputCacheDeclaration, get_output_cache_declaration
from .filter import LoggerFactoryProtocol, OutputCacheFilter
from .profiles import CacheProfileRegistry

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class OutputCacheMiddleware:
    """
    Resolves the declarations for the matched route and applies them.

    App-wide declarations run alongside the route's own declaration; all of
    them are sorted by ``order`` (app-wide first on ties). The resulting
    context is exposed as ``request.state.output_cache`` and the response gets
    a ``Cache-Control`` header unless the endpoint already set one.
    """

    def __init__(
        self,
        *,
        profiles: Optional[CacheProfileRegistry] = None,
        logger_factory: Optional[LoggerFactoryProtocol] = None,
        declarations: Sequence[OutputCacheDeclaration] = (),
        default_expiration_seconds: int = 60,
        case_sensitive_paths: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.profiles = profiles if profiles is not None else CacheProfileRegistry()
        self.logger_factory = logger_factory or LoggerFactory()
        self.logger = self.logger_factory.get_logger("output_cache.middleware")
        self.global_declarations = tuple(declarations)
        self.default_expiration = timedelta(seconds=default_expiration_seconds)
        self.case_sensitive_paths = case_sensitive_paths
        self.metrics = metrics

        self._filters: Dict[OutputCacheDeclaration, OutputCacheFilter] = {}
        self._filters_lock = threading.Lock()

    def install(self, app: FastAPI) -> "OutputCacheMiddleware":
        """Register the middleware on ``app``."""
        app.middleware("http")(self)
        app.state.output_cache_middleware = self
        return self

    async def __call__(self, request: Request, call_next):
        route = self.match_route(request)
        declarations = self.resolve_declarations(route)
        if not declarations:
            return await call_next(request)

        route_path = getattr(route, "path", request.url.path)
        set_route(route_path)

        context = OutputCacheContext.for_request(
            request.method,
            request.headers,
            profiles=self.profiles,
            default_expiration=self.default_expiration,
            case_sensitive_paths=self.case_sensitive_paths,
        )
        for declaration in declarations:
            self.filter_for(declaration).apply(context)

        if context.enable_output_caching:
            context.cache_key = context.build_cache_key(
                request.method,
                request.url.path,
                request.query_params.multi_items(),
            )
        request.state.output_cache = context

        response = await call_next(request)

        context.finalize_response(response.status_code, response.headers)
        cache_control = context.cache_control_header()
        if cache_control is not None and "cache-control" not in response.headers:
            response.headers["Cache-Control"] = cache_control

        self._record(context)
        self.logger.info(
            "Output cache decision",
            route=route_path,
            decision=context.decision,
            cache_key=context.cache_key,
            expiration_seconds=context.expiration_seconds,
            missing_profiles=context.missing_profiles or None,
        )
        return response

    @staticmethod
    def match_route(request: Request) -> Optional[BaseRoute]:
        """Return the route that fully matches the request, if any."""
        for route in request.app.router.routes:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return route
        return None

    def resolve_declarations(self, route: Optional[BaseRoute]) -> List[OutputCacheDeclaration]:
        """App-wide and route declarations for ``route``, sorted by order."""
        if route is None:
            return []

        declarations = list(self.global_declarations)
        route_declaration = get_output_cache_declaration(getattr(route, "endpoint", None))
        if route_declaration is not None:
            declarations.append(route_declaration)

        return sorted(declarations, key=lambda declaration: declaration.order)

    def filter_for(self, declaration: OutputCacheDeclaration) -> OutputCacheFilter:
        """Return the filter for ``declaration``, reusing it when allowed."""
        if not declaration.is_reusable:
            return declaration.create_instance(self.logger_factory)

        instance = self._filters.get(declaration)
        if instance is None:
            with self._filters_lock:
                instance = self._filters.get(declaration)
                if instance is None:
                    instance = declaration.create_instance(self.logger_factory)
                    self._filters[declaration] = instance
        return instance

    def declared_routes(self, app: FastAPI) -> List[Dict[str, Any]]:
        """Describe every route that carries a declaration."""
        routes = []
        for route in app.router.routes:
            declaration = get_output_cache_declaration(getattr(route, "endpoint", None))
            if declaration is None:
                continue
            routes.append({
                "path": getattr(route, "path", None),
                "methods": sorted(getattr(route, "methods", None) or []),
                "declaration": declaration.describe(),
            })
        return routes

    def validate_profiles(self, app: FastAPI) -> None:
        """Raise ProfileNotFoundError if any declared profile is not registered."""
        self.profiles.ensure_profiles(self._declared_profile_names(app))

    def _declared_profile_names(self, app: FastAPI) -> Iterable[str]:
        declarations = list(self.global_declarations)
        for route in app.router.routes:
            declaration = get_output_cache_declaration(getattr(route, "endpoint", None))
            if declaration is not None:
                declarations.append(declaration)
        return [d.cache_profile_name for d in declarations if d.cache_profile_name is not None]

    def _record(self, context: OutputCacheContext) -> None:
        if self.metrics is None:
            return
        self.metrics.increment_counter("output_cache_decisions_total", decision=context.decision)
        for profile_name in context.missing_profiles:
            self.metrics.increment_counter("output_cache_profile_misses_total", profile=profile_name)
