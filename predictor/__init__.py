"""
Prediction module for TokenPulse.
Builds per-token price predictions and sentiment from the inference service,
with synthetic fallbacks when a call fails.
"""

from flask import Flask

from .llama_client import LlamaClient, UpstreamError
from .models import TokenRecord, TokenDataset, CycleState, CycleStatus, HORIZONS, SENTIMENTS
from .orchestrator import PredictionOrchestrator, CycleError, parse_predictions
from .routes import dashboard_bp
from .state import DashboardStore, CycleInProgressError

def build_orchestrator(config) -> PredictionOrchestrator:
    """
    Build an orchestrator from application configuration.

    Args:
        config: Mapping with LLAMA_API_BASE, LLM_MODEL, UPSTREAM_TIMEOUT and TOKENS
    """
    client = LlamaClient(
        config['LLAMA_API_BASE'],
        model=config['LLM_MODEL'],
        timeout=config['UPSTREAM_TIMEOUT'],
    )
    return PredictionOrchestrator(client, config['TOKENS'])

def init_dashboard(app: Flask) -> None:
    """
    Initialize the dashboard store and register its blueprint.

    Args:
        app: Flask application instance
    """
    app.extensions['tokenpulse.store'] = DashboardStore(app.config['TOKENS'])
    app.extensions.setdefault(
        'tokenpulse.orchestrator_factory',
        lambda: build_orchestrator(app.config)
    )
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

__all__ = [
    'init_dashboard', 'build_orchestrator', 'dashboard_bp',
    'LlamaClient', 'UpstreamError',
    'TokenRecord', 'TokenDataset', 'CycleState', 'CycleStatus', 'HORIZONS', 'SENTIMENTS',
    'PredictionOrchestrator', 'CycleError', 'parse_predictions',
    'DashboardStore', 'CycleInProgressError',
]
