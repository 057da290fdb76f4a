"""
Configuration module for TokenPulse.
Handles environment-specific settings and configuration loading.
"""

import os
from typing import Dict, Any, List


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    """Base configuration class."""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Server Configuration
    PORT = int(os.environ.get('PORT', 3000))

    # Reverse Proxy Configuration
    UPSTREAM_ORIGIN = os.environ.get('UPSTREAM_ORIGIN', 'https://llamatool.us.gaianet.network')
    PROXY_PREFIX = os.environ.get('PROXY_PREFIX', '/api/llama')
    UPSTREAM_BASE_PATH = os.environ.get('UPSTREAM_BASE_PATH', '/v1')
    PROXY_TIMEOUT = float(os.environ.get('PROXY_TIMEOUT', 60))

    # Static Bundle Configuration
    STATIC_FOLDER = os.environ.get('STATIC_FOLDER') or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), 'build'
    )
    INDEX_DOCUMENT = os.environ.get('INDEX_DOCUMENT', 'index.html')

    # Prediction Configuration
    # Unset means the local gateway, derived from PORT and PROXY_PREFIX at load time
    LLAMA_API_BASE = os.environ.get('LLAMA_API_BASE')
    LLM_MODEL = os.environ.get('LLM_MODEL', 'llama')
    TOKENS = _split_list(os.environ.get('TOKENS', 'aave,uniswap,compound-governance-token,maker'))
    UPSTREAM_TIMEOUT = float(os.environ.get('UPSTREAM_TIMEOUT', 30))
    CYCLE_IN_BACKGROUND = os.environ.get('CYCLE_IN_BACKGROUND', 'true').lower() == 'true'

    # CORS Configuration
    CORS_ORIGINS = _split_list(os.environ.get('CORS_ORIGINS', '*'))

    # Application Configuration
    APP_NAME = os.environ.get('APP_NAME', 'TokenPulse')
    VERSION = os.environ.get('APP_VERSION', '1.0.0')
    ENVIRONMENT = os.environ.get('ENVIRONMENT', 'development')

    # Monitoring Configuration
    SENTRY_DSN = os.environ.get('SENTRY_DSN')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG = True
    TESTING = False

    # More verbose logging in development
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration."""

    TESTING = True
    DEBUG = True
    ENVIRONMENT = 'testing'

    # Cycles run inline so tests observe the final state
    CYCLE_IN_BACKGROUND = False

    # Never talk to the real upstream from tests
    UPSTREAM_ORIGIN = 'http://upstream.test'
    LLAMA_API_BASE = 'http://gateway.test/api/llama'
    UPSTREAM_TIMEOUT = 1.0
    PROXY_TIMEOUT = 1.0
    SENTRY_DSN = None


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG = False
    TESTING = False
    ENVIRONMENT = 'production'


# Configuration mapping
config_mapping = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def local_api_base(port, proxy_prefix: str) -> str:
    """Gateway URL the orchestrator uses when LLAMA_API_BASE is not set."""
    return f'http://127.0.0.1:{port}{proxy_prefix.rstrip("/")}'


def get_config(environment: str = None) -> Config:
    """
    Get configuration class based on environment.

    Args:
        environment: Environment name

    Returns:
        Configuration class
    """
    if environment is None:
        environment = os.environ.get('FLASK_ENV', 'development')

    return config_mapping.get(environment, DevelopmentConfig)


def load_config(app, config: Dict[str, Any] = None, environment: str = None) -> None:
    """
    Load configuration into Flask app.

    Args:
        app: Flask application instance
        config: Additional configuration overrides
        environment: Environment name, defaults to FLASK_ENV

    Raises:
        ValueError: If the resulting configuration is unusable
    """
    config_class = get_config(environment)
    app.config.from_object(config_class)

    # Apply any additional configuration
    if config:
        app.config.update(config)

    if not app.config.get('LLAMA_API_BASE') and app.config.get('PROXY_PREFIX'):
        app.config['LLAMA_API_BASE'] = local_api_base(app.config['PORT'], app.config['PROXY_PREFIX'])

    # Validate required configuration
    required_configs = ['UPSTREAM_ORIGIN', 'PROXY_PREFIX', 'LLAMA_API_BASE', 'LLM_MODEL']
    missing_configs = [key for key in required_configs if not app.config.get(key)]

    if missing_configs:
        raise ValueError(f"Missing required configuration: {', '.join(missing_configs)}")

    tokens = app.config.get('TOKENS') or []
    if not tokens:
        raise ValueError("TOKENS must name at least one token")
    if len(set(tokens)) != len(tokens):
        raise ValueError("TOKENS must not contain duplicates")

    if not app.config['PROXY_PREFIX'].startswith('/'):
        raise ValueError("PROXY_PREFIX must start with '/'")
