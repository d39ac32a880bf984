"""ABOUTME: Unit tests for the CLI commands using fake services
ABOUTME: Session cleanup, rate limit info/reset and two-factor history output"""

from datetime import timedelta

import pyotp
import time_machine

from communityguard.entrypoints.cli import cli
from communityguard.service_layer.rate_limiter import RATE_LIMIT_RULES


class TestSessionsCommands:
    def test_cleanup_expired(self, cli_with_services, fake_services, user_id):
        with time_machine.travel("2026-02-01 00:00:00+00:00", tick=False) as traveller:
            fake_services.sessions.create_session(user_id, "", "")
            traveller.shift(timedelta(days=31))

            result = cli_with_services(cli, ["sessions", "cleanup-expired"], fake_services)

        assert result.exit_code == 0, result.output
        assert "Marked 1 expired session(s) inactive" in result.output


class TestRateLimitCommands:
    def test_info(self, cli_with_services, fake_services):
        rule = RATE_LIMIT_RULES["auth"]
        for _ in range(3):
            fake_services.rate_limiter.check_rule(rule, "10.0.0.9")

        result = cli_with_services(cli, ["rate-limits", "info", "10.0.0.9", "--rule", "auth"], fake_services)

        assert result.exit_code == 0, result.output
        assert "Current:   3" in result.output
        assert "Remaining: 2" in result.output

    def test_reset(self, cli_with_services, fake_services):
        rule = RATE_LIMIT_RULES["auth"]
        for _ in range(6):
            fake_services.rate_limiter.check_rule(rule, "10.0.0.9")

        result = cli_with_services(cli, ["rate-limits", "reset", "10.0.0.9"], fake_services)

        assert result.exit_code == 0, result.output
        assert "Reset auth limit for 10.0.0.9" in result.output
        assert fake_services.rate_limiter.check_rule(rule, "10.0.0.9").allowed

    def test_reset_unknown(self, cli_with_services, fake_services):
        result = cli_with_services(cli, ["rate-limits", "reset", "10.0.0.10", "--rule", "api"], fake_services)
        assert result.exit_code == 0
        assert "No api counter found" in result.output

    def test_store_down_aborts(self, cli_with_services, fake_services, counter_store):
        counter_store.fail = True
        result = cli_with_services(cli, ["rate-limits", "info", "10.0.0.9"], fake_services)
        assert result.exit_code != 0
        assert "Counter store unavailable" in result.output


class TestTwoFactorCommands:
    def test_history(self, cli_with_services, fake_services, user_id):
        setup = fake_services.two_factor.setup(user_id, ip_address="10.1.1.1")
        fake_services.two_factor.enable(user_id, pyotp.TOTP(setup.secret).now(), ip_address="10.1.1.1")

        result = cli_with_services(cli, ["two-factor", "history", str(user_id)], fake_services)

        assert result.exit_code == 0, result.output
        assert "setup" in result.output
        assert "enable" in result.output
        assert "10.1.1.1" in result.output

    def test_history_empty(self, cli_with_services, fake_services, user_id):
        result = cli_with_services(cli, ["two-factor", "history", str(user_id)], fake_services)
        assert result.exit_code == 0
        assert "No two-factor events found." in result.output


def test_version(cli_with_services, fake_services):
    result = cli_with_services(cli, ["version"], fake_services)
    assert result.exit_code == 0
    assert "CommunityGuard 0.1.0" in result.output
