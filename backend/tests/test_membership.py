"""
Membership gate: expiry arithmetic, classification and routing.
"""
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from academy import membership
from academy.membership import (
    AccessState,
    DISABLED_NOTICE,
    TIER_ANNUAL,
    TIER_FREE_TRIAL,
    TIER_MONTHLY,
    access_end_date,
    classify_access,
    days_until_renewal,
    default_renew_days,
    is_membership_expired,
    normalize_tier,
    resolve_route,
    tier_display_name,
    today,
)


def _profile(start=date(2024, 1, 1), days=30, disabled=False):
    return SimpleNamespace(subscription_date=start, renew_interval_days=days, disabled=disabled)


class TestExpiry:
    def test_access_end_is_start_plus_interval(self):
        assert access_end_date(date(2024, 1, 1), 30) == datetime(2024, 1, 31)

    def test_within_period_is_active(self):
        assert classify_access(True, _profile(), now=datetime(2024, 1, 30)) == AccessState.ACTIVE

    def test_after_period_is_expired(self):
        assert classify_access(True, _profile(), now=datetime(2024, 2, 1)) == AccessState.EXPIRED

    def test_boundary_is_strict(self):
        end = datetime(2024, 1, 31)
        assert is_membership_expired(date(2024, 1, 1), 30, now=end) is False
        assert is_membership_expired(date(2024, 1, 1), 30, now=datetime(2024, 1, 31, 0, 0, 1)) is True

    def test_zero_day_interval_expires_immediately(self):
        assert is_membership_expired(date(2024, 1, 1), 0, now=datetime(2024, 1, 1, 0, 0, 1)) is True

    @pytest.mark.parametrize(
        "start, days",
        [(None, 30), (date(2024, 1, 1), None), (None, None), ("not-a-date", 30)],
    )
    def test_missing_fields_fail_open(self, start, days):
        assert is_membership_expired(start, days, now=datetime(2099, 1, 1)) is False
        assert access_end_date(start, days) is None

    def test_accepts_iso_strings(self):
        assert is_membership_expired("2024-01-01", 30, now="2024-02-01T00:00:00") is True

    def test_aware_now_is_compared_in_utc(self):
        plus5 = timezone(timedelta(hours=5))
        # 04:00 at +05:00 is 23:00 UTC, still inside the period
        assert is_membership_expired(date(2024, 1, 1), 30, now=datetime(2024, 1, 31, 4, 0, tzinfo=plus5)) is False
        assert is_membership_expired(date(2024, 1, 1), 30, now=datetime(2024, 1, 31, 5, 1, tzinfo=plus5)) is True

    def test_offset_strings_are_compared_in_utc(self):
        assert is_membership_expired("2024-01-01", 30, now="2024-01-31T01:00+05:00") is False
        assert is_membership_expired("2024-01-01", 30, now="2024-01-30T20:00-05:00") is True
        assert access_end_date("2024-01-01T03:00+03:00", 30) == datetime(2024, 1, 31)

    def test_today_follows_the_expiry_clock(self, monkeypatch):
        monkeypatch.setattr(membership, "_utcnow", lambda: datetime(2026, 10, 19, 23, 30))
        assert today() == date(2026, 10, 19)
        assert is_membership_expired(today(), 1) is False

    def test_days_until_renewal(self):
        assert days_until_renewal(date(2024, 1, 1), 30, now=datetime(2024, 1, 21)) == 10
        assert days_until_renewal(date(2024, 1, 1), 30, now=datetime(2024, 3, 1)) == 0
        assert days_until_renewal(None, 30) is None


class TestClassification:
    def test_disabled_wins_over_expiry(self):
        profile = _profile(disabled=True)
        assert classify_access(True, profile, now=datetime(2024, 2, 1)) == AccessState.DISABLED
        assert classify_access(True, profile, now=datetime(2024, 1, 2)) == AccessState.DISABLED

    def test_no_session_ignores_profile(self):
        assert classify_access(False, _profile(disabled=True)) == AccessState.UNAUTHENTICATED
        assert classify_access(False, None) == AccessState.UNAUTHENTICATED

    def test_session_without_profile_data_is_active(self):
        assert classify_access(True, None) == AccessState.ACTIVE


class TestRouting:
    def test_unauthenticated_goes_to_login(self):
        decision = resolve_route(AccessState.UNAUTHENTICATED, "/courses")
        assert not decision.allowed
        assert decision.redirect_to == "/login"

    def test_disabled_signs_out_with_notice(self):
        decision = resolve_route(AccessState.DISABLED, "/home")
        assert decision.redirect_to == "/login"
        assert decision.sign_out is True
        assert decision.notice == DISABLED_NOTICE

    @pytest.mark.parametrize("path", ["/jail", "/subscription", "/auth/logout"])
    def test_expired_surfaces_do_not_loop(self, path):
        assert resolve_route(AccessState.EXPIRED, path).allowed

    def test_expired_is_held_on_jail(self):
        decision = resolve_route(AccessState.EXPIRED, "/courses/1")
        assert decision.redirect_to == "/jail"

    def test_active_member_leaves_jail(self):
        decision = resolve_route(AccessState.ACTIVE, "/jail")
        assert not decision.allowed
        assert decision.redirect_to == "/home"
        assert resolve_route(AccessState.ACTIVE, "/courses").allowed

    @pytest.mark.parametrize("state", list(AccessState))
    def test_public_paths_always_open(self, state):
        assert resolve_route(state, "/login").allowed
        assert resolve_route(state, "/health").allowed

    def test_prefix_match_is_by_segment(self):
        assert not resolve_route(AccessState.EXPIRED, "/jailbreak").allowed


class TestTiers:
    def test_default_days(self):
        assert default_renew_days(TIER_FREE_TRIAL) == 1
        assert default_renew_days(TIER_MONTHLY) == 30
        assert default_renew_days(TIER_ANNUAL) == 365
        assert default_renew_days("something else") == 30

    def test_legacy_tiers_are_normalised(self):
        assert normalize_tier("TOP G", 365) == TIER_ANNUAL
        assert normalize_tier("TOP G", 30) == TIER_MONTHLY
        assert normalize_tier("WAR ROOM") == TIER_MONTHLY
        assert normalize_tier("THE REAL WORLD") == TIER_MONTHLY
        assert normalize_tier(TIER_FREE_TRIAL) == TIER_FREE_TRIAL

    def test_display_name(self):
        assert tier_display_name("TOP G", 365) == TIER_ANNUAL
        assert tier_display_name("TOP G", 30) == TIER_MONTHLY
        assert tier_display_name(None) == "TOP G"
