"""
Gateway module for TokenPulse.
Handles request proxying to the upstream inference service and serving the
single-page application bundle.
"""

from flask import Flask

from .reverse_proxy import reverse_proxy_bp, rewrite_path, forward
from .static_site import static_site_bp

def init_gateway(app: Flask) -> None:
    """
    Register gateway blueprints.

    The static site is registered last; its catch-all route only receives
    paths no other rule matches.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(reverse_proxy_bp, url_prefix=app.config['PROXY_PREFIX'].rstrip('/'))
    app.register_blueprint(static_site_bp)

__all__ = ['init_gateway', 'reverse_proxy_bp', 'static_site_bp', 'rewrite_path', 'forward']
