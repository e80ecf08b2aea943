"""
Theme Park Crowd Tracker - Configuration Unit Tests

Tests the Config class with:
- Environment variable loading
- AWS SSM Parameter Store integration (mocked)
- Type conversions (int, float, bool)
- Default value handling
- Error handling for missing configuration

Priority: P0 - Foundation (configuration used by all modules)
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from utils.config import Config, ConfigurationError


class ParameterNotFound(Exception):
    """Stand-in for botocore's ssm.exceptions.ParameterNotFound (matched by name)."""


# ============================================================================
# Test Class: Config - Local Mode (Environment Variables)
# ============================================================================

class TestConfigLocalMode:
    """
    Test Config class in local development mode.

    Mode: ENVIRONMENT='local'
    Source: os.getenv() from .env file or system environment
    """

    def test_config_defaults_to_local_environment(self):
        """
        Config should default to 'local' environment if ENVIRONMENT not set.
        """
        with patch.dict(os.environ, {}, clear=True):
            config = Config()
            assert config.environment == 'local'
            assert config.is_production is False

    def test_get_returns_environment_variable_in_local_mode(self):
        """Config.get() should read from os.getenv() in local mode."""
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'TEST_KEY': 'test_value'}):
            config = Config()
            assert config.get('TEST_KEY') == 'test_value'

    def test_get_returns_default_when_key_not_found(self):
        """Config.get() should return default value when key not found."""
        with patch.dict(os.environ, {'ENVIRONMENT': 'local'}, clear=True):
            config = Config()
            assert config.get('MISSING_KEY', 'default_value') == 'default_value'
            assert config.get('MISSING_KEY') is None


# ============================================================================
# Test Class: Config - Production Mode (AWS SSM)
# ============================================================================

class TestConfigProductionMode:
    """
    Test Config class in production mode with AWS SSM Parameter Store.

    Mode: ENVIRONMENT='production'
    Source: AWS SSM Parameter Store (mocked)
    """

    @patch('boto3.client')
    def test_get_fetches_from_ssm_in_production_mode(self, mock_boto_client):
        """
        Config.get() should fetch from AWS SSM at /crowdtracker/<KEY>.
        """
        mock_ssm = MagicMock()
        mock_ssm.get_parameter.return_value = {
            'Parameter': {'Value': 'prod-database.aws.com'}
        }
        mock_boto_client.return_value = mock_ssm

        with patch.dict(os.environ, {'ENVIRONMENT': 'production'}, clear=True):
            config = Config()
            result = config.get('DB_HOST')

        mock_boto_client.assert_called_once_with('ssm', region_name='us-east-1')
        mock_ssm.get_parameter.assert_called_once_with(
            Name='/crowdtracker/DB_HOST',
            WithDecryption=True
        )
        assert result == 'prod-database.aws.com'

    @patch('boto3.client')
    def test_get_uses_custom_ssm_prefix(self, mock_boto_client):
        """Config should use custom AWS_SSM_PREFIX if provided."""
        mock_ssm = MagicMock()
        mock_ssm.get_parameter.return_value = {'Parameter': {'Value': 'x'}}
        mock_boto_client.return_value = mock_ssm

        with patch.dict(os.environ, {
            'ENVIRONMENT': 'production',
            'AWS_SSM_PREFIX': '/custom/prefix'
        }):
            Config().get('DB_HOST')

        mock_ssm.get_parameter.assert_called_once_with(
            Name='/custom/prefix/DB_HOST',
            WithDecryption=True
        )

    @patch('boto3.client')
    def test_get_returns_default_when_ssm_parameter_not_found(self, mock_boto_client):
        """Missing SSM parameter with a default should return the default."""
        mock_ssm = MagicMock()
        mock_ssm.get_parameter.side_effect = ParameterNotFound('missing')
        mock_boto_client.return_value = mock_ssm

        with patch.dict(os.environ, {'ENVIRONMENT': 'production'}):
            assert Config().get('OPTIONAL_KEY', 'fallback') == 'fallback'

    @patch('boto3.client')
    def test_get_raises_error_when_ssm_parameter_not_found_and_no_default(self, mock_boto_client):
        """Missing required SSM parameter should raise ConfigurationError."""
        mock_ssm = MagicMock()
        mock_ssm.get_parameter.side_effect = ParameterNotFound('missing')
        mock_boto_client.return_value = mock_ssm

        with patch.dict(os.environ, {'ENVIRONMENT': 'production'}):
            with pytest.raises(ConfigurationError, match="REQUIRED_KEY"):
                Config().get('REQUIRED_KEY')


# ============================================================================
# Test Class: Typed Accessors
# ============================================================================

class TestTypedAccessors:
    """Test get_int(), get_float() and get_bool()."""

    def test_get_int_converts_string_to_integer(self):
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'SAMPLER_BATCH_SIZE': '7'}):
            assert Config().get_int('SAMPLER_BATCH_SIZE', 5) == 7

    def test_get_int_returns_default_on_invalid_conversion(self):
        """Invalid integers fall back to the default instead of crashing startup."""
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'SAMPLER_BATCH_SIZE': 'lots'}):
            assert Config().get_int('SAMPLER_BATCH_SIZE', 5) == 5

    def test_get_float_converts_string_to_float(self):
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'CROWD_LEVEL_TIMEOUT_SECONDS': '0.5'}):
            assert Config().get_float('CROWD_LEVEL_TIMEOUT_SECONDS', 2.0) == 0.5

    def test_get_float_returns_default_on_invalid_conversion(self):
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'CROWD_LEVEL_TIMEOUT_SECONDS': 'soon'}):
            assert Config().get_float('CROWD_LEVEL_TIMEOUT_SECONDS', 2.0) == 2.0

    @pytest.mark.parametrize('raw', ['true', 'True', '1', 'yes', 'on'])
    def test_get_bool_converts_true_strings(self, raw):
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'FLAG': raw}):
            assert Config().get_bool('FLAG', False) is True

    @pytest.mark.parametrize('raw', ['false', '0', 'no', 'off'])
    def test_get_bool_converts_false_strings(self, raw):
        with patch.dict(os.environ, {'ENVIRONMENT': 'local', 'FLAG': raw}):
            assert Config().get_bool('FLAG', True) is False


# ============================================================================
# Test Class: Module-Level Settings
# ============================================================================

class TestModuleSettings:
    """Module-level constants are present with sensible types."""

    def test_ingestion_settings_exist(self):
        from utils import config as config_module

        assert isinstance(config_module.SAMPLER_BATCH_SIZE, int)
        assert isinstance(config_module.SAMPLER_BATCH_DELAY_SECONDS, float)
        assert isinstance(config_module.COLLECTION_INTERVAL_MINUTES, int)
        assert isinstance(config_module.CATALOG_UPSERT_CHUNK_SIZE, int)
        assert config_module.QUEUE_TIMES_API_BASE_URL.startswith('http')

    def test_crowd_level_settings_exist(self):
        from utils import config as config_module

        assert config_module.CROWD_HISTORY_TTL_SECONDS > 0
        assert config_module.CROWD_LEVEL_TIMEOUT_SECONDS > 0
        assert config_module.CACHE_BACKEND in ('memory', 'database')

    def test_configuration_error_is_exception(self):
        assert issubclass(ConfigurationError, Exception)
