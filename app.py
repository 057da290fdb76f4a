#!/usr/bin/env python3
"""
TokenPulse Gateway
Flask application that serves the prediction dashboard bundle, proxies
/api/llama/* to the upstream inference service and exposes the dashboard state.
"""

import os
import time
import logging
from typing import Dict, Any
from flask import Flask, request, g
from flask_cors import CORS

# Import our modules
from config import load_config
from gateway import init_gateway
from predictor import init_dashboard
from utils.error_handlers import register_error_handlers
from utils.monitoring import init_monitoring

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger(__name__)

def create_app(config: Dict[str, Any] = None, environment: str = None) -> Flask:
    """
    Application factory pattern for creating Flask app instances.

    Args:
        config: Optional configuration dictionary
        environment: Optional environment name overriding FLASK_ENV

    Returns:
        Configured Flask application instance
    """
    # The bundle is served by the static-site blueprint
    app = Flask(__name__, static_folder=None)

    # Load configuration
    load_config(app, config, environment)
    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize monitoring and error tracking
    init_monitoring_and_errors(app)

    # Initialize extensions
    init_extensions(app)

    # Register blueprints
    register_blueprints(app)

    # Add request logging
    setup_request_logging(app)

    logger.info("TokenPulse gateway initialized")
    return app

def init_monitoring_and_errors(app: Flask) -> None:
    """Initialize monitoring and error handling systems."""
    init_monitoring(app)
    register_error_handlers(app)
    logger.info("Monitoring and error handling initialized")

def init_extensions(app: Flask) -> None:
    """Initialize Flask extensions."""
    # Dashboard API only; proxied responses keep the upstream headers
    CORS(app, resources={r"/api/dashboard*": {"origins": app.config['CORS_ORIGINS']}})

    @app.after_request
    def add_security_headers(response):
        """Add security headers to gateway-generated responses."""
        if request.blueprint == 'reverse_proxy':
            return response
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    init_dashboard(app)

    # Gateway last: its static site owns the catch-all route
    init_gateway(app)

def setup_request_logging(app: Flask) -> None:
    """Setup request and response logging."""

    @app.before_request
    def log_request_info():
        """Log incoming requests."""
        # Skip logging for health checks
        if request.endpoint in ['health', 'metrics']:
            return

        logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")
        g.request_started = time.time()

    @app.after_request
    def log_response_info(response):
        """Log response information."""
        if request.endpoint in ['health', 'metrics']:
            return response

        if hasattr(g, 'request_started') and request.blueprint != 'reverse_proxy':
            response_time = (time.time() - g.request_started) * 1000
            response.headers['X-Response-Time'] = f"{response_time:.2f}ms"

        logger.info(f"Response: {response.status_code} for {request.method} {request.path}")
        return response

# Create application instance
app = create_app()

if __name__ == '__main__':
    port = app.config['PORT']
    debug = os.getenv('DEBUG', 'false').lower() == 'true'

    logger.info(f"Environment: {app.config.get('ENVIRONMENT')}")
    logger.info(f"Proxying {app.config['PROXY_PREFIX']} -> {app.config['UPSTREAM_ORIGIN']}{app.config['UPSTREAM_BASE_PATH']}")
    logger.info(f"Server is up on port {port}")

    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)
