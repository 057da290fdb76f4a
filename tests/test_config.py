import pytest
from flask import Flask

from config import DevelopmentConfig, ProductionConfig, TestingConfig, get_config, load_config


def test_get_config_by_environment():
    assert get_config('testing') is TestingConfig
    assert get_config('production') is ProductionConfig
    assert get_config('unknown') is DevelopmentConfig


def test_defaults_match_gateway_routing():
    app = Flask(__name__)
    load_config(app, environment='production')

    assert app.config['PROXY_PREFIX'] == '/api/llama'
    assert app.config['UPSTREAM_BASE_PATH'] == '/v1'
    assert app.config['LLM_MODEL'] == 'llama'
    assert app.config['TOKENS'] == ['aave', 'uniswap', 'compound-governance-token', 'maker']


def test_overrides_are_applied():
    app = Flask(__name__)
    load_config(app, {'TOKENS': ['aave']}, environment='testing')

    assert app.config['TOKENS'] == ['aave']
    assert app.config['CYCLE_IN_BACKGROUND'] is False


@pytest.mark.parametrize('overrides', [
    {'TOKENS': []},
    {'TOKENS': ['aave', 'aave']},
    {'PROXY_PREFIX': 'api/llama'},
    {'UPSTREAM_ORIGIN': ''},
])
def test_invalid_configuration_is_rejected(overrides):
    app = Flask(__name__)

    with pytest.raises(ValueError):
        load_config(app, overrides, environment='testing')


def test_local_api_base_follows_port_override(monkeypatch):
    monkeypatch.setattr('config.Config.LLAMA_API_BASE', None)
    app = Flask(__name__)

    load_config(app, {'PORT': 8123}, environment='production')

    assert app.config['LLAMA_API_BASE'] == 'http://127.0.0.1:8123/api/llama'


def test_explicit_api_base_is_kept():
    app = Flask(__name__)

    load_config(app, {'PORT': 8123, 'LLAMA_API_BASE': 'http://gateway.internal/api/llama'}, environment='production')

    assert app.config['LLAMA_API_BASE'] == 'http://gateway.internal/api/llama'
