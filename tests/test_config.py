from agentic_relay.config import BotConfig, Config, MonitoringConfig, StorageConfig


def test_bot_config_from_environment(monkeypatch):
    monkeypatch.setenv("BOT_APP_ID", "app-123")
    monkeypatch.setenv("BOT_APP_PASSWORD", "secret")
    monkeypatch.setenv("BOT_TENANT_ID", "tenant-1")
    monkeypatch.setenv("BOT_APP_TYPE", "SingleTenant")
    monkeypatch.setenv("BOT_OAUTH_CONNECTION_NAME", "relay-sso")

    config = BotConfig()

    assert config.APP_ID == "app-123"
    assert config.APP_PASSWORD == "secret"
    assert config.APP_TENANTID == "tenant-1"
    assert config.APP_TYPE == "SingleTenant"
    assert config.oauth_connection_name == "relay-sso"


def test_config_groups(monkeypatch):
    monkeypatch.setenv("COPILOT_DIRECT_CONNECT_URL", "https://host.example.com/bots/agent/conversations")
    monkeypatch.setenv("COPILOT_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("SERVER_PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = Config()

    assert config.copilot.direct_connect_url == "https://host.example.com/bots/agent/conversations"
    assert config.copilot.timeout_seconds == 30.0
    assert config.copilot.scope == "https://api.powerplatform.com/.default"
    assert config.server.port == 8080
    assert config.monitoring.log_level == "DEBUG"
    assert config.storage.backend == "memory"


def test_defaults(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("STORAGE_BACKEND", raising=False)

    assert MonitoringConfig().log_level == "INFO"
    assert StorageConfig().container_name == "relay-sessions"
