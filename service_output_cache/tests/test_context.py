"""
Unit tests for OutputCacheContext.
"""

from datetime import timedelta

from service_output_cache.app.caching.context import OutputCacheContext


class TestRequestEligibility:
    """Test cases for the default request policy."""

    def test_get_is_eligible(self):
        """Test that anonymous GET requests may be cached."""
        context = OutputCacheContext.for_request("get", {"Accept": "application/json"})

        assert context.request_eligible is True
        assert context.enable_output_caching is True
        assert context.decision == "cacheable"

    def test_post_is_not_eligible(self):
        """Test that unsafe methods are never cached."""
        context = OutputCacheContext.for_request("POST", {})

        assert context.request_eligible is False
        assert context.allow_cache_storage is False
        assert context.cache_control_header() is None
        assert context.decision == "ineligible"

    def test_authorized_request_is_not_eligible(self):
        """Test that credentialed requests are never cached."""
        context = OutputCacheContext.for_request("GET", {"Authorization": "Bearer token"})

        assert context.request_eligible is False


class TestCacheKey:
    """Test cases for cache key derivation."""

    def test_default_varies_by_all_query_keys(self):
        """Test that unset vary keys include the whole query string."""
        context = OutputCacheContext()

        first = context.build_cache_key("GET", "/items", [("page", "1"), ("size", "10")])
        second = context.build_cache_key("GET", "/items", [("page", "1"), ("size", "20")])

        assert first != second
        assert first.startswith("output_cache:")

    def test_query_order_does_not_matter(self):
        """Test that query pairs are normalized before hashing."""
        context = OutputCacheContext()

        first = context.build_cache_key("GET", "/items", [("b", "2"), ("a", "1")])
        second = context.build_cache_key("GET", "/items", [("a", "1"), ("b", "2")])

        assert first == second

    def test_selected_keys_only(self):
        """Test that only the configured keys take part in the key."""
        context = OutputCacheContext()
        context.set_vary_by_query_keys(["Page"])

        first = context.build_cache_key("GET", "/items", {"page": "1", "trace": "a"})
        second = context.build_cache_key("GET", "/items", {"page": "1", "trace": "b"})
        third = context.build_cache_key("GET", "/items", {"page": "2", "trace": "a"})

        assert first == second
        assert first != third

    def test_wildcard_key(self):
        """Test that '*' selects every query key."""
        context = OutputCacheContext()
        context.set_vary_by_query_keys(["*"])

        first = context.build_cache_key("GET", "/items", {"x": "1"})
        second = context.build_cache_key("GET", "/items", {"x": "2"})

        assert first != second

    def test_query_key_spelling_shares_entry(self):
        """Test that differently cased spellings of a vary key give one cache key."""
        context = OutputCacheContext()
        context.set_vary_by_query_keys(("id",))

        lower = context.build_cache_key("GET", "/items", [("id", "1")])
        upper = context.build_cache_key("GET", "/items", [("ID", "1")])

        assert lower == upper
        assert lower != context.build_cache_key("GET", "/items", [("ID", "2")])

    def test_query_key_spelling_shares_entry_for_all_keys(self):
        """Test key folding when every query key varies the entry."""
        unset = OutputCacheContext()
        wildcard = OutputCacheContext()
        wildcard.set_vary_by_query_keys(["*"])

        for context in (unset, wildcard):
            assert context.build_cache_key("GET", "/items", {"Page": "1"}) == context.build_cache_key(
                "GET", "/items", {"page": "1"}
            )

    def test_path_case(self):
        """Test path normalization with and without case sensitivity."""
        insensitive = OutputCacheContext()
        sensitive = OutputCacheContext(case_sensitive_paths=True)

        assert insensitive.build_cache_key("GET", "/Items") == insensitive.build_cache_key("GET", "/items")
        assert sensitive.build_cache_key("GET", "/Items") != sensitive.build_cache_key("GET", "/items")

    def test_method_is_part_of_key(self):
        """Test that GET and HEAD entries are kept apart."""
        context = OutputCacheContext()

        assert context.build_cache_key("GET", "/items") != context.build_cache_key("HEAD", "/items")


class TestResponseFinalization:
    """Test cases for response-dependent storage rules."""

    def test_ok_response_is_stored(self):
        """Test that a 200 without cookies stays cacheable."""
        context = OutputCacheContext.for_request("GET", {})
        context.set_expiration(timedelta(seconds=15))

        context.finalize_response(200, {"content-type": "application/json"})

        assert context.allow_cache_storage is True
        assert context.cache_control_header() == "public, max-age=15"

    def test_error_response_is_not_stored(self):
        """Test that non-200 responses are not stored."""
        context = OutputCacheContext.for_request("GET", {})

        context.finalize_response(404, {})

        assert context.allow_cache_storage is False
        assert context.cache_control_header() == "no-store"

    def test_set_cookie_is_not_stored(self):
        """Test that responses setting cookies are not stored."""
        context = OutputCacheContext.for_request("GET", {})

        context.finalize_response(200, {"Set-Cookie": "session=abc"})

        assert context.allow_cache_storage is False
        assert context.no_store is False
