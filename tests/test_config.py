"""
Tests for settings loading, startup validation and backend selection.
"""

import pytest
from pydantic import SecretStr, ValidationError

from src.config import (
    AWSSettings,
    EmailRelaySettings,
    EmailSettings,
    GhostSettings,
    ListmonkSettings,
    MauticSettings,
    SecuritySettings,
    SiteSettings,
    StorageSettings,
    get_settings,
    reload_settings,
)
from src.config_validator import (
    ConfigurationError,
    missing_email_relay_settings,
    validate_config,
)
from src.relay.newsletter import ListmonkNewsletter, MauticNewsletter


@pytest.fixture
def storage(tmp_path):
    return StorageSettings(fulfillment_ledger_path=str(tmp_path / "ledger.jsonl"))


LISTMONK = ListmonkSettings(
    listmonk_url="https://lm.test/",
    listmonk_api_user="api",
    listmonk_api_token="token",
    listmonk_list_id=5,
)


class TestSettingsGroups:
    def test_email_relay_defaults(self):
        relay = EmailRelaySettings()
        assert relay.email_relay_backend == "mautic"
        assert relay.delay_send_mins == 0

    def test_email_relay_from_environment(self, monkeypatch):
        monkeypatch.setenv("EMAIL_RELAY_BACKEND", "listmonk")
        monkeypatch.setenv("DELAY_SEND_MINS", "15")

        relay = EmailRelaySettings()
        assert relay.email_relay_backend == "listmonk"
        assert relay.delay_send_mins == 15

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ValidationError):
            EmailRelaySettings(email_relay_backend="sendgrid")

    def test_negative_delay_is_rejected(self):
        with pytest.raises(ValidationError):
            EmailRelaySettings(delay_send_mins=-1)

    def test_site_url_strips_trailing_slash(self):
        assert SiteSettings(site_url="https://kiln.test/").site_url == "https://kiln.test"

    def test_site_url_accepts_legacy_name(self, monkeypatch):
        monkeypatch.delenv("SITE_URL", raising=False)
        monkeypatch.setenv("SIGNAL_BASE_URL", "https://signal.kiln.test/")
        assert SiteSettings().site_url == "https://signal.kiln.test"

    def test_empty_ghost_secret_is_not_set(self):
        assert GhostSettings(ghost_webhook_secret=SecretStr("")).has_webhook_secret is False
        assert GhostSettings(ghost_webhook_secret=SecretStr("s")).has_webhook_secret is True

    def test_product_file_map_from_json(self, monkeypatch):
        monkeypatch.setenv("PRODUCT_FILE_MAP", '{"PROD.009": "prod-009/kit.zip"}')
        assert AWSSettings().product_file_map == {"PROD.009": "prod-009/kit.zip"}

    def test_product_file_map_default(self):
        assert AWSSettings().product_file_map["PROD.001"] == "prod-001/design-system-starter.zip"

    def test_email_source(self):
        email = EmailSettings(from_email="hello@kiln.test", from_name="KILN")
        assert email.source == "KILN <hello@kiln.test>"

    def test_origins_list(self):
        security = SecuritySettings(allowed_origins="https://a.test, ,https://b.test")
        assert security.origins_list == ["https://a.test", "https://b.test"]


class TestSettings:
    def test_mautic_relay_configured(self, make_settings):
        assert make_settings().is_email_relay_configured is True

    def test_mautic_without_template_is_not_configured(self, make_settings):
        settings = make_settings(
            mautic=MauticSettings(
                mautic_base_url="https://mautic.test",
                mautic_api_user="relay",
                mautic_api_password="pw",
            )
        )
        assert settings.is_email_relay_configured is False

    def test_listmonk_relay_configured(self, make_settings):
        settings = make_settings(
            email_relay=EmailRelaySettings(email_relay_backend="listmonk"),
            listmonk=LISTMONK,
        )
        assert settings.is_email_relay_configured is True
        assert settings.listmonk.listmonk_url == "https://lm.test"

    def test_summary_has_no_secrets(self, make_settings):
        summary = make_settings().get_config_summary()
        text = str(summary)

        assert summary["ghost_webhook_secret_set"] is True
        assert summary["email_relay_backend"] == "mautic"
        assert "ghost-test-secret" not in text
        assert "sk_test_123" not in text
        assert "pw" not in summary.values()


class TestMissingEmailRelaySettings:
    def test_complete_mautic(self, make_settings):
        assert missing_email_relay_settings(make_settings()) == []

    def test_mautic_missing_template(self, make_settings):
        settings = make_settings(
            mautic=MauticSettings(
                mautic_base_url="https://mautic.test",
                mautic_api_user="relay",
                mautic_api_password="pw",
            )
        )
        assert missing_email_relay_settings(settings) == ["MAUTIC_SIGNAL_TEMPLATE_ID"]

    def test_listmonk_missing_everything(self, make_settings):
        settings = make_settings(
            email_relay=EmailRelaySettings(email_relay_backend="listmonk"),
            listmonk=ListmonkSettings(),
        )
        assert missing_email_relay_settings(settings) == [
            "LISTMONK_URL",
            "LISTMONK_API_USER",
            "LISTMONK_API_TOKEN",
            "LISTMONK_LIST_ID",
        ]


class TestValidateConfig:
    def test_complete_development_config_is_valid(self, make_settings, storage):
        result = validate_config(make_settings(storage=storage), fail_on_error=False)
        assert result.is_valid is True
        assert result.errors == []

    def test_missing_ghost_secret_is_warning_in_development(self, make_settings, storage):
        settings = make_settings(ghost=GhostSettings(), storage=storage)
        result = validate_config(settings, fail_on_error=False)

        assert result.is_valid is True
        assert any("GHOST_WEBHOOK_SECRET" in w for w in result.warnings)

    def test_missing_ghost_secret_fails_in_production(self, make_settings, storage):
        settings = make_settings(
            ghost=GhostSettings(),
            security=SecuritySettings(environment="production", allowed_origins="https://kiln.studio"),
            storage=storage,
        )
        with pytest.raises(ConfigurationError):
            validate_config(settings)

    def test_incomplete_backend_is_error_in_production(self, make_settings, storage):
        settings = make_settings(
            email_relay=EmailRelaySettings(email_relay_backend="listmonk"),
            listmonk=ListmonkSettings(listmonk_url="https://lm.test"),
            security=SecuritySettings(environment="production", allowed_origins="https://kiln.studio"),
            storage=storage,
        )
        result = validate_config(settings, fail_on_error=False)

        assert result.is_valid is False
        assert any("LISTMONK_API_TOKEN" in e for e in result.errors)

    def test_wildcard_origin_in_production(self, make_settings, storage):
        settings = make_settings(
            security=SecuritySettings(environment="production", allowed_origins="*"),
            storage=storage,
        )
        result = validate_config(settings, fail_on_error=False)
        assert any("Wildcard" in e for e in result.errors)

    def test_missing_template_file_is_error(self, make_settings, storage, tmp_path):
        settings = make_settings(
            email_relay=EmailRelaySettings(
                email_relay_backend="listmonk",
                newsletter_template_path=str(tmp_path / "missing.html"),
            ),
            listmonk=LISTMONK,
            storage=storage,
        )
        result = validate_config(settings, fail_on_error=False)
        assert any("NEWSLETTER_TEMPLATE_PATH" in e for e in result.errors)

    def test_missing_operator_email_is_warning(self, make_settings, storage):
        settings = make_settings(email=EmailSettings(), storage=storage)
        result = validate_config(settings, fail_on_error=False)
        assert any("INTAKE_NOTIFICATION_EMAIL" in w for w in result.warnings)


class TestBuildNewsletterBackend:
    def test_mautic_backend(self, make_settings, mautic_client):
        from app.dependencies.container import build_newsletter_backend

        backend = build_newsletter_backend(make_settings(), mautic_client)

        assert isinstance(backend, MauticNewsletter)
        assert backend.client is mautic_client
        assert backend.template_id == 12

    def test_listmonk_backend(self, make_settings):
        from app.dependencies.container import build_newsletter_backend

        settings = make_settings(
            email_relay=EmailRelaySettings(email_relay_backend="listmonk"),
            listmonk=LISTMONK,
        )
        backend = build_newsletter_backend(settings)

        assert isinstance(backend, ListmonkNewsletter)
        assert backend.list_id == 5

    def test_incomplete_settings_disable_relay(self, make_settings):
        from app.dependencies.container import build_newsletter_backend

        settings = make_settings(
            email_relay=EmailRelaySettings(email_relay_backend="listmonk"),
            listmonk=ListmonkSettings(),
        )
        assert build_newsletter_backend(settings) is None


class TestSettingsCache:
    @pytest.fixture(autouse=True)
    def fresh_cache(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()

    def test_reload_picks_up_environment_changes(self, monkeypatch):
        monkeypatch.setenv("DELAY_SEND_MINS", "5")
        before = get_settings()

        monkeypatch.setenv("DELAY_SEND_MINS", "20")
        assert get_settings().email_relay.delay_send_mins == before.email_relay.delay_send_mins

        reloaded = reload_settings()
        assert reloaded is not before
        assert reloaded.email_relay.delay_send_mins == 20
        assert get_settings() is reloaded
