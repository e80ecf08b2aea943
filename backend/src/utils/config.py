"""
Theme Park Crowd Tracker - Configuration Management

Every tunable of the collector, sampler, crowd level engine and result cache
lives here as a module constant, read once at import.

Sources:
- ENVIRONMENT=local (default): process environment, seeded from .env
- ENVIRONMENT=production: AWS SSM Parameter Store under AWS_SSM_PREFIX
  (default /crowdtracker), e.g. /crowdtracker/DB_PASSWORD
"""

import logging
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Reads settings from the environment (local) or SSM (production)."""

    def __init__(self):
        self.environment = os.getenv('ENVIRONMENT', 'local')
        self._ssm_client = None

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Raw string value of a setting.

        Args:
            key: Setting name, e.g. "SAMPLER_BATCH_SIZE"
            default: Returned when the setting is absent

        Returns:
            Setting value or default
        """
        if self.is_production:
            return self._get_from_ssm(key, default)
        return os.getenv(key, default)

    def _get_from_ssm(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Raises:
            ConfigurationError: Parameter missing without a default, or SSM
                unreachable without a default
        """
        ssm_prefix = os.getenv('AWS_SSM_PREFIX', '/crowdtracker')
        parameter_name = f"{ssm_prefix}/{key}"

        try:
            if self._ssm_client is None:
                import boto3
                self._ssm_client = boto3.client(
                    'ssm',
                    region_name=os.getenv('AWS_REGION', 'us-east-1')
                )

            response = self._ssm_client.get_parameter(
                Name=parameter_name,
                WithDecryption=True
            )
            return response['Parameter']['Value']

        except Exception as e:
            # boto3 builds its error classes at runtime; match ParameterNotFound by name
            error_type = type(e).__name__
            if error_type == 'ParameterNotFound':
                if default is not None:
                    return default
                raise ConfigurationError(
                    f"Required parameter '{key}' not found in SSM at path '{parameter_name}'."
                )
            if default is not None:
                logging.warning(
                    f"SSM lookup of '{parameter_name}' failed ({error_type}: {e}); using default."
                )
                return default
            raise ConfigurationError(
                f"Failed to fetch parameter '{key}' from SSM: {error_type}: {e}"
            )

    def get_int(self, key: str, default: int) -> int:
        """Setting as int; unparseable values log a warning and give the default."""
        value = self.get(key, str(default))
        try:
            return int(value)
        except (ValueError, TypeError) as e:
            logging.warning(f"Invalid integer for '{key}': '{value}' ({e}); using {default}")
            return default

    def get_float(self, key: str, default: float) -> float:
        """Setting as float, same fallback as get_int()."""
        value = self.get(key, str(default))
        try:
            return float(value)
        except (ValueError, TypeError) as e:
            logging.warning(f"Invalid float for '{key}': '{value}' ({e}); using {default}")
            return default

    def get_bool(self, key: str, default: bool) -> bool:
        """Setting as bool: true/1/yes/on (any case) are True."""
        value = self.get(key, str(default))
        if value is None:
            return default
        return value.lower() in ('true', '1', 'yes', 'on')


class ConfigurationError(Exception):
    """A required setting could not be read."""
    pass


config = Config()


# Database (DATABASE_URL wins over the DB_* parts, e.g. sqlite:///crowd.db)
DATABASE_URL = config.get('DATABASE_URL', '')
DB_HOST = config.get('DB_HOST', 'localhost')
DB_PORT = config.get_int('DB_PORT', 3306)
DB_NAME = config.get('DB_NAME', 'crowd_tracker_dev')
DB_USER = config.get('DB_USER', 'root')
DB_PASSWORD = config.get('DB_PASSWORD', '')

# Queue-Times.com
QUEUE_TIMES_API_BASE_URL = config.get('QUEUE_TIMES_API_BASE_URL', 'https://queue-times.com')
QUEUE_TIMES_TIMEOUT_SECONDS = config.get_int('QUEUE_TIMES_TIMEOUT_SECONDS', 10)

LOG_LEVEL = config.get('LOG_LEVEL', 'INFO')

# Retry policy for upstream calls (timeouts and connection errors only)
MAX_RETRY_ATTEMPTS = config.get_int('MAX_RETRY_ATTEMPTS', 3)
RETRY_BACKOFF_MULTIPLIER = config.get_int('RETRY_BACKOFF_MULTIPLIER', 2)
RETRY_MIN_WAIT_SECONDS = config.get_int('RETRY_MIN_WAIT_SECONDS', 4)
RETRY_MAX_WAIT_SECONDS = config.get_int('RETRY_MAX_WAIT_SECONDS', 60)

# Catalog synchronization
CATALOG_UPSERT_CHUNK_SIZE = config.get_int('CATALOG_UPSERT_CHUNK_SIZE', 500)
CATALOG_SYNC_HOUR_UTC = config.get_int('CATALOG_SYNC_HOUR_UTC', 0)

# Queue-time sampling
COLLECTION_INTERVAL_MINUTES = config.get_int('COLLECTION_INTERVAL_MINUTES', 5)
SAMPLER_BATCH_SIZE = config.get_int('SAMPLER_BATCH_SIZE', 5)
SAMPLER_BATCH_DELAY_SECONDS = config.get_float('SAMPLER_BATCH_DELAY_SECONDS', 1.0)
PARK_PAGE_SIZE = config.get_int('PARK_PAGE_SIZE', 100)
LATEST_SAMPLE_TTL_SECONDS = config.get_int('LATEST_SAMPLE_TTL_SECONDS', 900)

# Crowd level engine
CROWD_HISTORY_TTL_SECONDS = config.get_int('CROWD_HISTORY_TTL_SECONDS', 6 * 3600)
CROWD_LEVEL_TIMEOUT_SECONDS = config.get_float('CROWD_LEVEL_TIMEOUT_SECONDS', 2.0)
CROWD_LEVEL_MAX_WORKERS = config.get_int('CROWD_LEVEL_MAX_WORKERS', 8)

# Result cache: 'memory' (per process) or 'database' (cache_entries table).
# The sampler only publishes the latest-sample projection to a 'database'
# cache; with 'memory' readers fall back to the sample table.
CACHE_BACKEND = config.get('CACHE_BACKEND', 'memory')
CACHE_DEFAULT_TTL_SECONDS = config.get_int('CACHE_DEFAULT_TTL_SECONDS', 300)
CACHE_MAX_ENTRIES = config.get_int('CACHE_MAX_ENTRIES', 10000)

# Connection pool (server databases only)
DB_POOL_SIZE = 10
DB_POOL_MAX_OVERFLOW = 20
DB_POOL_RECYCLE = 3600
DB_POOL_PRE_PING = True
