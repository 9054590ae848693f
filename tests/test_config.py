"""
Tests for configuration system
"""
import os
import pytest
from config import (
    Config,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    has_database,
    is_production,
    _env_bool
)


@pytest.mark.unit
class TestBaseConfig:
    """Tests for base configuration"""

    def test_base_config_has_secret_key(self):
        """Test that base config has a secret key"""
        config = Config()
        assert config.SECRET_KEY

    def test_base_config_has_max_content_length(self):
        """Test that billing payloads are capped at 2MB"""
        assert Config().MAX_CONTENT_LENGTH == 2 * 1024 * 1024

    def test_base_config_has_cors_settings(self):
        """Test that base config has CORS settings"""
        config = Config()
        assert 'PUT' in config.CORS_METHODS
        assert 'DELETE' in config.CORS_METHODS

    def test_base_config_has_billing_settings(self):
        """Test the billing switches exist with usable defaults"""
        config = Config()
        assert config.BILLING_DETAILS_SORT_ORDER in ('auto', 'true', 'false')
        assert config.BILLING_AUTOSAVE_DELAY_SECONDS > 0
        assert isinstance(config.ENABLE_LEGACY_EXTRA_CHARGES_DEFAULTS, bool)
        assert isinstance(config.BILLING_STRICT_NATURAL_KEYS, bool)

    def test_base_config_has_logging_settings(self):
        """Test that base config has logging settings"""
        config = Config()
        assert config.LOG_LEVEL
        assert config.LOG_DIR


@pytest.mark.unit
class TestEnvBool:
    """Tests for boolean environment switches"""

    @pytest.mark.parametrize('value', ['1', 'true', 'TRUE', ' yes ', 'on'])
    def test_truthy(self, monkeypatch, value):
        """Test accepted spellings of true"""
        monkeypatch.setenv('BILLING_TEST_SWITCH', value)
        assert _env_bool('BILLING_TEST_SWITCH') is True

    @pytest.mark.parametrize('value', ['0', 'false', 'no', ''])
    def test_falsy(self, monkeypatch, value):
        """Test anything else is false"""
        monkeypatch.setenv('BILLING_TEST_SWITCH', value)
        assert _env_bool('BILLING_TEST_SWITCH') is False

    def test_default_when_unset(self, monkeypatch):
        """Test the default applies when the variable is missing"""
        monkeypatch.delenv('BILLING_TEST_SWITCH', raising=False)
        assert _env_bool('BILLING_TEST_SWITCH', 'true') is True


@pytest.mark.unit
class TestEnvironmentConfigs:
    """Tests for the per-environment classes"""

    def test_development_config(self):
        """Test development creates tables and logs at DEBUG"""
        config = DevelopmentConfig()
        assert config.DEBUG is True
        assert config.TESTING is False
        assert config.LOG_LEVEL == 'DEBUG'
        assert config.AUTO_CREATE_TABLES is True
        assert '*' in config.CORS_ORIGINS

    def test_production_config(self):
        """Test production has debug off and secure cookies"""
        config = ProductionConfig()
        assert config.DEBUG is False
        assert config.SESSION_COOKIE_SECURE is True
        assert config.SESSION_COOKIE_HTTPONLY is True
        assert config.PREFERRED_URL_SCHEME == 'https'

    def test_testing_config(self):
        """Test testing uses an in-memory database and short timers"""
        config = TestingConfig()
        assert config.TESTING is True
        assert config.DATABASE_URL == 'sqlite://'
        assert config.LOG_FILE is None
        assert config.BILLING_AUTOSAVE_DELAY_SECONDS < 1
        assert config.BILLING_SAVE_FLUSH_TIMEOUT == 5.0


@pytest.mark.unit
class TestGetConfig:
    """Tests for configuration selector"""

    def test_get_config_returns_development_by_default(self, monkeypatch):
        """Test that get_config returns development config by default"""
        monkeypatch.delenv('FLASK_ENV', raising=False)
        assert get_config() == DevelopmentConfig
        assert is_production() is False

    def test_get_config_returns_production_when_set(self, monkeypatch):
        """Test that get_config returns production config when env is production"""
        monkeypatch.setenv('FLASK_ENV', 'Production')
        assert get_config() == ProductionConfig
        assert is_production() is True

    def test_get_config_returns_testing_when_set(self, test_env_vars):
        """Test that get_config returns testing config when env is testing"""
        assert get_config() == TestingConfig

    def test_unknown_environment_falls_back(self, monkeypatch):
        """Test an unknown name selects development"""
        monkeypatch.setenv('FLASK_ENV', 'staging')
        assert get_config() == DevelopmentConfig

    def test_has_database(self, monkeypatch):
        """Test DATABASE_URL detection"""
        monkeypatch.delenv('DATABASE_URL', raising=False)
        assert has_database() is False
        monkeypatch.setenv('DATABASE_URL', 'sqlite://')
        assert has_database() is True
        assert os.environ['DATABASE_URL'] == 'sqlite://'
