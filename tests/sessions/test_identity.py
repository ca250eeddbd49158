"""Tests for session identity and user resolution."""

import hashlib

import pytest

from sessionlogs.errors import UserResolutionError
from sessionlogs.sessions.identity import (
    SessionClock,
    SessionContext,
    call_resolver,
    default_user_resolver,
    resolve_user,
    session_id_from_timestamp,
)


class TestSessionId:
    """Tests for session id derivation."""

    def test_deterministic(self):
        assert session_id_from_timestamp(1700000000123456789) == session_id_from_timestamp(1700000000123456789)

    def test_is_sha256_of_decimal_timestamp(self):
        expected = hashlib.sha256(b"1700000000123456789").hexdigest()

        assert session_id_from_timestamp(1700000000123456789) == expected

    def test_distinct_timestamps_give_distinct_ids(self):
        assert session_id_from_timestamp(1) != session_id_from_timestamp(2)


class TestSessionClock:
    """Tests for SessionClock."""

    def test_start_times_strictly_increase(self):
        clock = SessionClock()
        readings = [clock.start_ns() for _ in range(100)]

        assert readings == sorted(set(readings))

    def test_now_is_timezone_aware(self):
        assert SessionClock().now().tzinfo is not None


class TestResolveUser:
    """Tests for the default user resolution precedence."""

    def test_session_user_first(self, monkeypatch):
        monkeypatch.setenv("SHINYPROXY_USERNAME", "proxy-user")

        assert resolve_user(SessionContext(user="alice"), default_user="fallback") == "alice"

    def test_environment_variable_second(self, monkeypatch):
        monkeypatch.setenv("SHINYPROXY_USERNAME", "proxy-user")

        assert resolve_user(SessionContext(), default_user="fallback") == "proxy-user"

    def test_custom_environment_variable(self, monkeypatch):
        monkeypatch.setenv("APP_USER", "bob")

        assert resolve_user(SessionContext(), env_var="APP_USER") == "bob"

    def test_default_user_third(self, monkeypatch):
        monkeypatch.delenv("SHINYPROXY_USERNAME", raising=False)

        assert resolve_user(SessionContext(), default_user="fallback") == "fallback"

    def test_os_user_last(self, monkeypatch):
        monkeypatch.delenv("SHINYPROXY_USERNAME", raising=False)
        monkeypatch.setattr("getpass.getuser", lambda: "os-user")

        assert resolve_user(SessionContext()) == "os-user"

    def test_default_resolver_binds_configuration(self, monkeypatch):
        monkeypatch.delenv("SHINYPROXY_USERNAME", raising=False)
        resolver = default_user_resolver(default_user="configured")

        assert resolver(SessionContext()) == "configured"


class TestCallResolver:
    """Tests for call_resolver."""

    def test_passes_context(self):
        context = SessionContext(extra={"token": "t"})

        assert call_resolver(lambda ctx: ctx.extra["token"], context) == "t"

    def test_raising_resolver(self):
        def broken(context):
            raise KeyError("user")

        with pytest.raises(UserResolutionError, match="resolver failed"):
            call_resolver(broken, SessionContext())

    @pytest.mark.parametrize("result", [None, "", 42])
    def test_unusable_result(self, result):
        with pytest.raises(UserResolutionError):
            call_resolver(lambda ctx: result, SessionContext())
