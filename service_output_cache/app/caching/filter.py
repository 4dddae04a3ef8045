"""
Runtime filter that applies a declaration's policies to a request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol

from shared.errors import InvalidArgumentError, ProfileNotFoundError
from .context import OutputCacheContext

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .declaration import OutputCacheDeclaration


class LoggerFactoryProtocol(Protocol):
    """Logging facility: hands out structured loggers by category."""

    def get_logger(self, category: str) -> Any:
        ...


class OutputCacheFilter:
    """Applies the owning declaration's compiled policies, in order."""

    def __init__(self, logger_factory: LoggerFactoryProtocol, declaration: "OutputCacheDeclaration"):
        if logger_factory is None:
            raise InvalidArgumentError("logger_factory", "a logging facility is required")
        self.declaration = declaration
        self.logger = logger_factory.get_logger("output_cache.filter")

    @property
    def order(self) -> int:
        return self.declaration.order

    def apply(self, context: Optional[OutputCacheContext]) -> Optional[OutputCacheContext]:
        """
        Apply each policy to ``context``.

        A missing profile is logged and skipped; any other error from a policy
        propagates to the caller.
        """
        if context is None:
            self.logger.warning(
                "Output cache declaration ignored: output caching middleware is not enabled",
                declaration=repr(self.declaration),
            )
            return None

        for policy in self.declaration.policies:
            try:
                policy.apply(context)
            except ProfileNotFoundError as exc:
                context.missing_profiles.append(exc.profile_name)
                self.logger.warning(
                    "Cache profile not found; continuing without profile defaults",
                    profile=exc.profile_name,
                )
                continue

            self.logger.debug("Output cache policy applied", policy=policy.kind, order=self.order)

        return context
