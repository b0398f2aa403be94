"""
Tests for preference resolution (is_channel_enabled, filter_channels).

Covers:
- Default cascade precedence
- Forced channels
- Unknown notification types / channels
- Cache-aside population and TTL expiry
"""

from unittest.mock import Mock

import pytest

from notification_preferences.cache import preference_key
from notification_preferences.models import DefaultPreference, PreferencesCatalog, resolve_default
from notification_preferences.loader import parse_catalog
from tests.conftest import (
    INVOICE_OVERDUE,
    INVOICE_PAID,
    NEWSLETTER,
    PRODUCT_LAUNCH,
    PROMO,
    SYSTEM_NOTICE,
)

USER = "user-1"


class TestDefaultCascade:
    def test_default_channels_membership_wins(self, service):
        assert service.is_channel_enabled(USER, INVOICE_OVERDUE, "database") is True
        assert service.is_channel_enabled(USER, INVOICE_OVERDUE, "mail") is False

    def test_notification_policy_beats_group_policy(self, service):
        # marketing is opt_out, ProductLaunch itself is opt_in
        assert service.is_channel_enabled(USER, PRODUCT_LAUNCH, "mail") is True

    def test_group_policy_applies_without_notification_default(self, service):
        assert service.is_channel_enabled(USER, NEWSLETTER, "mail") is False
        assert service.is_channel_enabled(USER, NEWSLETTER, "database") is False

    def test_global_default_for_ungrouped_notification(self, service):
        assert service.is_channel_enabled(USER, SYSTEM_NOTICE, "mail") is True

    def test_default_channels_beats_opt_in_group(self, service, catalog_provider):
        catalog_provider.swap(
            {
                "channels": {"mail": {"label": "Email"}, "database": {"label": "In-app"}},
                "groups": {"account": {"default_preference": "opt_in"}},
                "notifications": {
                    "app.Welcome": {"group": "account", "default_channels": ["database"]},
                },
            }
        )

        assert service.is_channel_enabled(USER, "app.Welcome", "mail") is False
        assert service.is_channel_enabled(USER, "app.Welcome", "database") is True

    def test_empty_default_channels_disables_everything(self):
        catalog = parse_catalog(
            {
                "notifications": {"app.Quiet": {"default_channels": [], "default_preference": "opt_in"}},
            }
        )
        assert resolve_default(catalog=catalog, notification_type="app.Quiet", channel="mail") is False

    def test_unknown_policy_string_resolves_as_opt_in(self):
        catalog = parse_catalog(
            {
                "groups": {"g": {"default_preference": "opt_out"}},
                "notifications": {"app.Odd": {"group": "g", "default_preference": "sometimes"}},
                "default_preference": "opt_out",
            }
        )
        assert resolve_default(catalog=catalog, notification_type="app.Odd", channel="mail") is True

    def test_empty_catalog_defaults_to_opt_in(self):
        catalog = PreferencesCatalog()
        assert catalog.default_preference is DefaultPreference.OPT_IN
        assert resolve_default(catalog=catalog, notification_type="x", channel="y") is True


class TestUnknownKeys:
    def test_unregistered_channel_returns_global_default(self, service):
        assert service.is_channel_enabled(USER, SYSTEM_NOTICE, "pigeon") is True

    def test_unregistered_channel_with_opt_out_global(self, service, catalog_provider, catalog_data):
        catalog_data["default_preference"] = "opt_out"
        catalog_provider.swap(catalog_data)

        assert service.is_channel_enabled(USER, SYSTEM_NOTICE, "pigeon") is False

    def test_unregistered_notification_type_never_raises(self, service):
        assert service.is_channel_enabled(USER, "app.DoesNotExist", "mail") is True

    def test_blank_user_id_rejected(self, service):
        with pytest.raises(ValueError, match="user_id is required"):
            service.is_channel_enabled("   ", SYSTEM_NOTICE, "mail")


class TestForcedChannels:
    def test_forced_channel_always_enabled(self, service):
        assert service.is_channel_enabled(USER, INVOICE_PAID, "mail") is True

    def test_forced_channel_ignores_disabling_record(self, service, store):
        store.upsert(USER, INVOICE_PAID, "mail", False)

        assert service.is_channel_enabled(USER, INVOICE_PAID, "mail") is True

    def test_forced_channel_ignores_stale_cache(self, service, cache):
        cache.set(preference_key(USER, PROMO, "mail"), False)

        assert service.is_channel_enabled(USER, PROMO, "mail") is True


class TestCacheAside:
    def test_miss_populates_cache(self, service, cache):
        key = preference_key(USER, NEWSLETTER, "mail")
        assert cache.get(key) is None

        service.is_channel_enabled(USER, NEWSLETTER, "mail")

        assert cache.get(key) is False

    def test_hit_skips_store(self, service, store, monkeypatch):
        service.is_channel_enabled(USER, NEWSLETTER, "mail")
        find_one = Mock(wraps=store.find_one)
        monkeypatch.setattr(store, "find_one", find_one)

        assert service.is_channel_enabled(USER, NEWSLETTER, "mail") is False
        find_one.assert_not_called()

    def test_explicit_record_is_cached(self, service, store, cache):
        store.upsert(USER, NEWSLETTER, "mail", True)

        assert service.is_channel_enabled(USER, NEWSLETTER, "mail") is True
        assert cache.get(preference_key(USER, NEWSLETTER, "mail")) is True

    def test_entry_expires_after_ttl(self, service, store, cache, clock):
        service.is_channel_enabled(USER, NEWSLETTER, "mail")
        # written behind the service's back: only the TTL can surface it
        store.upsert(USER, NEWSLETTER, "mail", True)

        clock.advance(cache.ttl_seconds - 1)
        assert service.is_channel_enabled(USER, NEWSLETTER, "mail") is False

        clock.advance(2)
        assert service.is_channel_enabled(USER, NEWSLETTER, "mail") is True

    def test_default_ttl_is_24_hours(self, cache):
        assert cache.ttl_seconds == 86400

    def test_users_do_not_share_entries(self, service):
        service.set_preference("user-a", NEWSLETTER, "mail", True)

        assert service.is_channel_enabled("user-a", NEWSLETTER, "mail") is True
        assert service.is_channel_enabled("user-b", NEWSLETTER, "mail") is False


class TestFilterChannels:
    def test_keeps_enabled_and_forced_in_input_order(self, service):
        assert service.filter_channels(USER, PROMO, ["database", "mail"]) == ["mail"]

    def test_preserves_duplicates(self, service):
        result = service.filter_channels(USER, PRODUCT_LAUNCH, ["mail", "database", "mail"])
        assert result == ["mail", "database", "mail"]

    def test_forced_channel_bypasses_store(self, service, store, monkeypatch):
        find_one = Mock(wraps=store.find_one)
        monkeypatch.setattr(store, "find_one", find_one)

        assert service.filter_channels(USER, INVOICE_PAID, ["mail"]) == ["mail"]
        find_one.assert_not_called()

    def test_forced_channel_kept_despite_record(self, service, store):
        store.upsert(USER, INVOICE_PAID, "mail", False)
        store.upsert(USER, INVOICE_PAID, "database", False)

        assert service.filter_channels(USER, INVOICE_PAID, ["database", "mail"]) == ["mail"]

    def test_unknown_channels_follow_default(self, service):
        assert service.filter_channels(USER, SYSTEM_NOTICE, ["pigeon", "mail"]) == ["pigeon", "mail"]

    def test_empty_input(self, service):
        assert service.filter_channels(USER, SYSTEM_NOTICE, []) == []
