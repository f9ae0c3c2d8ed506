"""Tests for Settings."""

from marketchat.config import Settings, get_settings


def test_env_file_is_applied(tmp_path, monkeypatch):
    monkeypatch.delenv("MESSAGES_RECIPIENT_COLUMN", raising=False)
    monkeypatch.delenv("CHANGE_FEED_CHANNEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "MESSAGES_RECIPIENT_COLUMN=to_user\nCHANGE_FEED_CHANNEL=public:chat\n"
    )

    settings = Settings(_env_file=str(env_file))

    assert settings.messages_recipient_column == "to_user"
    assert settings.change_feed_channel == "public:chat"


def test_environment_variable_overrides_default(monkeypatch):
    monkeypatch.setenv("OPTIMISTIC_SEND", "true")
    assert get_settings().optimistic_send is True


def test_test_environment_uses_test_database(monkeypatch):
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    settings = get_settings()
    assert settings.environment == "test"
    assert settings.database_url == "sqlite://"
