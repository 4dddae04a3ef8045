"""
Unit tests for shared errors, configuration and logging helpers.
"""

from unittest.mock import patch

from shared.config import ServiceConfig, get_config
from shared.errors import ErrorResponse, InvalidArgumentError, ProfileNotFoundError
from shared.logging import (
    LoggerFactory,
    add_correlation_context,
    add_service_context,
    clear_context,
    request_id_var,
    set_request_id,
    set_route,
)


class TestErrors:
    """Test cases for the error taxonomy."""

    def test_invalid_argument_response(self):
        """Test conversion of InvalidArgumentError to an error response."""
        error = InvalidArgumentError("logger_factory", "a logging facility is required")

        response = error.to_response()

        assert isinstance(response, ErrorResponse)
        assert response.code == "INVALID_ARGUMENT"
        assert response.message == "logger_factory: a logging facility is required"
        assert response.details == {"argument": "logger_factory"}
        assert response.trace_id is None
        assert error.status_code == 400

    def test_profile_not_found(self):
        """Test ProfileNotFoundError carries the profile name."""
        error = ProfileNotFoundError("Hourly", {"route": "/items"})

        assert error.profile_name == "Hourly"
        assert error.status_code == 404
        assert error.details == {"profile": "Hourly", "route": "/items"}
        assert "Hourly" in str(error)


class TestConfig:
    """Test cases for service configuration."""

    def test_defaults(self):
        """Test default output cache settings."""
        config = get_config("output_cache", 8000)

        assert isinstance(config, ServiceConfig)
        assert config.default_expiration_seconds == 60
        assert config.cache_profiles_file is None
        assert config.strict_profiles is False
        assert config.host == "0.0.0.0"

    def test_environment_overrides(self):
        """Test settings are read from prefixed environment variables."""
        env = {
            "OUTPUT_CACHE_DEFAULT_EXPIRATION_SECONDS": "120",
            "OUTPUT_CACHE_STRICT_PROFILES": "true",
            "OUTPUT_CACHE_LOG_LEVEL": "debug",
        }
        with patch.dict("os.environ", env):
            config = get_config("output_cache", 8000)

        assert config.default_expiration_seconds == 120
        assert config.strict_profiles is True
        assert config.log_level == "debug"


class TestLogging:
    """Test cases for logging helpers."""

    def test_request_id_context(self):
        """Test request ID propagation through context variables."""
        request_id = set_request_id()
        assert request_id_var.get() == request_id

        clear_context()
        assert request_id_var.get() is None

    def test_logger_factory_prefixes_category(self):
        """Test categories are namespaced by service."""
        factory = LoggerFactory("output_cache")

        with patch("shared.logging.get_logger") as mock_get_logger:
            factory.get_logger("filter")
            factory.get_logger("output_cache.middleware")

        assert [call.args[0] for call in mock_get_logger.call_args_list] == [
            "output_cache.filter",
            "output_cache.middleware",
        ]

    def test_correlation_processors(self):
        """Test that request and route context reach log events."""
        set_request_id("req-1")
        set_route("/api/v1/cache/profiles")

        event = add_correlation_context(None, "info", {"event": "x"})
        event = add_service_context(None, "info", dict(event, logger="output_cache.filter"))

        assert event["request_id"] == "req-1"
        assert event["route"] == "/api/v1/cache/profiles"
        assert event["service"] == "output_cache"

        clear_context()
        assert add_correlation_context(None, "info", {"event": "y"}) == {"event": "y"}
