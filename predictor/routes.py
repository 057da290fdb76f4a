"""
Dashboard endpoints.
Expose the current cycle state and the per-token forecast to the browser.
"""

import logging
from flask import Blueprint, current_app, jsonify, request

from utils.error_handlers import ConflictError, NotFoundError, ValidationError, require_json_object
from .models import CycleStatus
from .state import CycleInProgressError, DashboardStore

# Setup logging
logger = logging.getLogger(__name__)

# Create blueprint
dashboard_bp = Blueprint('dashboard', __name__)

def get_store() -> DashboardStore:
    return current_app.extensions['tokenpulse.store']

def start_cycle():
    """Trigger a cycle using the app's orchestrator factory."""
    app = current_app._get_current_object()

    def with_app_context(fn):
        def run():
            with app.app_context():
                fn()
        return run

    return get_store().trigger(
        app.extensions['tokenpulse.orchestrator_factory'],
        background=app.config.get('CYCLE_IN_BACKGROUND', True),
        wrap=with_app_context,
    )

def state_payload(store: DashboardStore, state=None):
    state = state or store.state
    payload = state.to_dict()
    payload['tokens'] = list(store.tokens)
    payload['selectedToken'] = store.selected_token
    return payload

@dashboard_bp.route('', methods=['GET'])
def get_dashboard():
    """
    Get the dashboard state.

    The first request against an idle dashboard starts the initial cycle.

    Returns:
        200: Current state, with tokenData once a cycle has completed
    """
    store = get_store()
    state = store.state

    if state.status is CycleStatus.IDLE:
        try:
            state = start_cycle()
            logger.info("Initial fetch cycle started")
        except CycleInProgressError:
            state = store.state

    return jsonify(state_payload(store, state)), 200

@dashboard_bp.route('/refresh', methods=['POST'])
def refresh_dashboard():
    """
    Start a new fetch cycle.

    Returns:
        202: Cycle started (or finished, when cycles run inline)
        409: A cycle is already running
    """
    try:
        state = start_cycle()
    except CycleInProgressError as e:
        raise ConflictError(str(e)) from e

    return jsonify(state_payload(get_store(), state)), 202

@dashboard_bp.route('/tokens/<token>', methods=['GET'])
def get_token(token):
    """
    Get one token's record, forecast rows and chart series.

    Returns:
        200: Token details
        404: Unknown token
        409: No dataset has been produced yet
    """
    store = get_store()
    if token not in store.tokens:
        raise NotFoundError(f"Unknown token: {token}")

    dataset = store.state.dataset
    if dataset is None:
        raise ConflictError("No prediction data available yet")

    record = dataset[token]
    return jsonify({
        'token': token,
        'record': record.to_dict(),
        'forecast': record.forecast_rows(),
        'chart': record.chart_series(),
    }), 200

@dashboard_bp.route('/selection', methods=['PUT'])
def select_token():
    """
    Change the selected token.

    Expected JSON:
        {"token": "uniswap"}

    Returns:
        200: Updated selection
        400: Malformed body or unknown token
    """
    data = require_json_object(request.get_json(silent=True))
    token = data.get('token')

    store = get_store()
    if not isinstance(token, str) or token not in store.tokens:
        raise ValidationError("Unknown token", details={'tokens': list(store.tokens)})

    store.select(token)
    return jsonify({'selectedToken': token}), 200
