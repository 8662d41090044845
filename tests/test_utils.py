"""Tests for shared helpers."""

import threading

import pytest

from fleetops.utils import call_inline, call_maybe_async, is_elevated, parse_key_values, split_list


class TestParseKeyValues:
    """Tests for parse_key_values."""

    def test_empty(self):
        """Test empty input."""
        assert parse_key_values("") == {}
        assert parse_key_values(None) == {}

    def test_pairs(self):
        """Test several pairs with whitespace."""
        assert parse_key_values("path=/var/tmp, days=7") == {"path": "/var/tmp", "days": "7"}

    def test_value_with_equals(self):
        """Test only the first '=' splits."""
        assert parse_key_values("cmd=a=b") == {"cmd": "a=b"}

    def test_trailing_comma(self):
        """Test empty entries are ignored."""
        assert parse_key_values("a=1,") == {"a": "1"}

    def test_missing_equals(self):
        """Test a pair without '=' is rejected."""
        with pytest.raises(ValueError, match="key=value"):
            parse_key_values("a=1,broken")

    def test_empty_key(self):
        """Test a pair with an empty key is rejected."""
        with pytest.raises(ValueError, match="Key must not be empty"):
            parse_key_values("=1")


class TestSplitList:
    """Tests for split_list."""

    def test_split(self):
        """Test whitespace and empty entries are dropped."""
        assert split_list(" a, b,,c ") == ["a", "b", "c"]
        assert split_list(None) == []


class TestCallHelpers:
    """Tests for calling sync or async callables."""

    @pytest.mark.asyncio
    async def test_call_maybe_async_sync_in_thread(self):
        """Test plain functions run off the event loop thread."""
        main_thread = threading.get_ident()
        result = await call_maybe_async(lambda x: (x, threading.get_ident()), 1)
        assert result[0] == 1
        assert result[1] != main_thread

    @pytest.mark.asyncio
    async def test_call_maybe_async_coroutine(self):
        """Test coroutine functions are awaited."""

        async def double(x):
            return x * 2

        assert await call_maybe_async(double, 4) == 8

    @pytest.mark.asyncio
    async def test_call_inline_same_thread(self):
        """Test call_inline stays on the current thread."""
        main_thread = threading.get_ident()
        assert await call_inline(lambda: threading.get_ident()) == main_thread

    @pytest.mark.asyncio
    async def test_call_inline_awaits_result(self):
        """Test call_inline awaits an awaitable result."""

        async def value():
            return "done"

        assert await call_inline(lambda: value()) == "done"


def test_is_elevated_returns_bool():
    """Test elevation check returns a bool."""
    assert isinstance(is_elevated(), bool)
