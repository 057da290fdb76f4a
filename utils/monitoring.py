"""
Monitoring and observability for TokenPulse.
Integrates with Sentry and keeps lightweight in-process request metrics.
"""

import logging
import time
import uuid
from typing import Dict, Any, Optional
from flask import Flask, request, g, current_app, has_app_context

logger = logging.getLogger(__name__)

# Prometheus name, type and help text for the custom series
CUSTOM_METRIC_EXPORTS = {
    'proxy_forwards': ('tokenpulse_proxy_forwards_total', 'counter',
                       'Proxied requests by relayed status class'),
    'proxy_response_time_ms': ('tokenpulse_proxy_upstream_time_ms_sum', 'counter',
                               'Total milliseconds spent waiting on the upstream'),
    'upstream_fallbacks': ('tokenpulse_upstream_fallbacks_total', 'counter',
                           'Prediction and sentiment calls replaced by synthetic data'),
}

def flatten_series(series: Dict[tuple, float]) -> Dict[str, float]:
    """{('kind:sentiment', 'token:aave'): 1} -> {'kind:sentiment,token:aave': 1}"""
    return {','.join(tags): value for tags, value in series.items()}

def prometheus_labels(tags: tuple) -> str:
    """('kind:sentiment', 'token:aave') -> '{kind="sentiment",token="aave"}'"""
    if not tags:
        return ''
    pairs = []
    for tag in tags:
        key, _, value = tag.partition(':')
        value = value.replace('\\', '\\\\').replace('"', '\\"')
        pairs.append(f'{key}="{value}"')
    return '{' + ','.join(pairs) + '}'

class MonitoringConfig:
    """Configuration for monitoring and observability."""

    def __init__(self, app: Flask = None):
        """
        Initialize monitoring configuration.

        Args:
            app: Flask application instance
        """
        self.app = app
        self.sentry_sdk = None

        if app:
            self.init_app(app)

    def init_app(self, app: Flask):
        """
        Initialize monitoring with Flask app.

        Args:
            app: Flask application instance
        """
        self.app = app

        # Initialize Sentry for error tracking
        self._init_sentry(app)

        # Initialize custom metrics
        self._init_custom_metrics(app)

        # Setup request tracking
        self._setup_request_tracking(app)

        logger.info("Monitoring system initialized")

    def _init_sentry(self, app: Flask):
        """Initialize Sentry error tracking."""
        sentry_dsn = app.config.get('SENTRY_DSN')

        if not sentry_dsn:
            logger.info("SENTRY_DSN not configured, skipping Sentry initialization")
            return

        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        try:
            sentry_sdk.init(
                dsn=sentry_dsn,
                integrations=[
                    FlaskIntegration(
                        transaction_style='endpoint'
                    ),
                ],
                traces_sample_rate=0.1,  # 10% of transactions
                send_default_pii=False,
                environment=app.config.get('ENVIRONMENT', 'development'),
                release=app.config.get('VERSION', 'unknown'),
                before_send=self._filter_sentry_events,
            )

            self.sentry_sdk = sentry_sdk
            logger.info("Sentry error tracking initialized")

        except Exception as e:
            logger.error(f"Failed to initialize Sentry: {e}")

    def _filter_sentry_events(self, event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Filter and sanitize Sentry events.

        Args:
            event: Sentry event data
            hint: Sentry hint data

        Returns:
            Filtered event data or None to drop the event
        """
        # Don't send health check errors
        if 'request' in event and event['request'].get('url', '').endswith('/health'):
            return None

        # Remove authorization headers forwarded by the browser
        if 'request' in event:
            headers = event['request'].get('headers', {})
            if 'Authorization' in headers:
                headers['Authorization'] = '[Filtered]'

        return event

    def _init_custom_metrics(self, app: Flask):
        """Initialize custom metrics collection."""
        app.config['METRICS'] = {
            'requests_total': 0,
            'requests_by_status': {},
            'response_times': [],
            'proxy_requests': 0,
            'dashboard_requests': 0,
            'errors_total': 0,
            'custom': {},
        }

    def _setup_request_tracking(self, app: Flask):
        """Setup request/response tracking middleware."""

        @app.before_request
        def track_request_start():
            """Track request start time and metadata."""
            g.start_time = time.time()
            g.request_id = self._generate_request_id()

            app.config['METRICS']['requests_total'] += 1

            # Track by endpoint
            endpoint = request.endpoint or 'unknown'
            if endpoint.startswith('reverse_proxy.'):
                app.config['METRICS']['proxy_requests'] += 1
            elif endpoint.startswith('dashboard.'):
                app.config['METRICS']['dashboard_requests'] += 1

        @app.after_request
        def track_request_end(response):
            """Track request completion and metrics."""
            if hasattr(g, 'start_time'):
                response_time = time.time() - g.start_time
                app.config['METRICS']['response_times'].append(response_time)
                del app.config['METRICS']['response_times'][:-1000]

                # Track by status code
                status_code = response.status_code
                status_key = f"{status_code//100}xx"
                app.config['METRICS']['requests_by_status'][status_key] = \
                    app.config['METRICS']['requests_by_status'].get(status_key, 0) + 1

                if status_code >= 400:
                    app.config['METRICS']['errors_total'] += 1

                # Proxied responses go back to the browser untouched
                if hasattr(g, 'request_id') and request.blueprint != 'reverse_proxy':
                    response.headers['X-Request-ID'] = g.request_id

            return response

    def _generate_request_id(self) -> str:
        """Generate unique request ID."""
        return str(uuid.uuid4())[:8]

    def _target_app(self) -> Optional[Flask]:
        if has_app_context():
            return current_app._get_current_object()
        return self.app

    def track_custom_metric(self, metric_name: str, value: float = 1, tags: list = None):
        """
        Track custom metric.

        Values are summed per metric name and tag set.

        Args:
            metric_name: Name of the metric
            value: Metric value
            tags: Optional 'key:value' tags for the metric
        """
        tags = tuple(sorted(tags or []))

        app = self._target_app()
        if app is not None:
            series = app.config.setdefault('METRICS', {}).setdefault('custom', {}).setdefault(metric_name, {})
            series[tags] = series.get(tags, 0) + value

        logger.debug(f"Metric: {metric_name} = {value}, tags: {list(tags)}")

    def get_custom_metrics(self) -> Dict[str, Dict[tuple, float]]:
        """Custom metric totals keyed by name, then by sorted tag tuple."""
        app = self._target_app()
        return app.config.get('METRICS', {}).get('custom', {})

    def get_health_metrics(self) -> Dict[str, Any]:
        """
        Get current health metrics.

        Returns:
            Dictionary of health metrics
        """
        app = self._target_app()
        metrics = app.config.get('METRICS', {})

        # Calculate average response time
        response_times = metrics.get('response_times', [])
        recent = response_times[-100:]
        avg_response_time = sum(recent) / len(recent) if recent else 0

        # Calculate error rate
        total_requests = metrics.get('requests_total', 0)
        total_errors = metrics.get('errors_total', 0)
        error_rate = (total_errors / total_requests * 100) if total_requests > 0 else 0

        custom = metrics.get('custom', {})

        return {
            'requests_total': total_requests,
            'requests_by_status': metrics.get('requests_by_status', {}),
            'avg_response_time_ms': round(avg_response_time * 1000, 2),
            'error_rate_percent': round(error_rate, 2),
            'proxy_requests': metrics.get('proxy_requests', 0),
            'dashboard_requests': metrics.get('dashboard_requests', 0),
            'proxy_forwards': flatten_series(custom.get('proxy_forwards', {})),
            'upstream_fallbacks': flatten_series(custom.get('upstream_fallbacks', {})),
            'uptime_seconds': time.time() - app.config.get('START_TIME', time.time())
        }

# Global monitoring instance
monitoring = MonitoringConfig()

def init_monitoring(app: Flask):
    """
    Initialize monitoring with Flask app.

    Args:
        app: Flask application instance
    """
    # Store app start time
    app.config['START_TIME'] = time.time()

    monitoring.init_app(app)

    @app.route('/health')
    def health():
        """Health check with metrics."""
        health_metrics = monitoring.get_health_metrics()

        status = 'healthy'
        if health_metrics['error_rate_percent'] > 10:
            status = 'degraded'
        if health_metrics['avg_response_time_ms'] > 5000:
            status = 'slow'

        return {
            'status': status,
            'service': 'tokenpulse',
            'version': app.config.get('VERSION', 'unknown'),
            'environment': app.config.get('ENVIRONMENT', 'unknown'),
            'metrics': health_metrics
        }

    @app.route('/metrics')
    def metrics():
        """Prometheus-style metrics endpoint."""
        metrics_data = monitoring.get_health_metrics()

        lines = []
        lines.append("# HELP tokenpulse_requests_total Total number of requests")
        lines.append("# TYPE tokenpulse_requests_total counter")
        lines.append(f"tokenpulse_requests_total {metrics_data['requests_total']}")

        lines.append("# HELP tokenpulse_proxy_requests_total Requests forwarded upstream")
        lines.append("# TYPE tokenpulse_proxy_requests_total counter")
        lines.append(f"tokenpulse_proxy_requests_total {metrics_data['proxy_requests']}")

        lines.append("# HELP tokenpulse_response_time_ms Average response time in milliseconds")
        lines.append("# TYPE tokenpulse_response_time_ms gauge")
        lines.append(f"tokenpulse_response_time_ms {metrics_data['avg_response_time_ms']}")

        lines.append("# HELP tokenpulse_error_rate_percent Error rate percentage")
        lines.append("# TYPE tokenpulse_error_rate_percent gauge")
        lines.append(f"tokenpulse_error_rate_percent {metrics_data['error_rate_percent']}")

        for metric_name, series in sorted(monitoring.get_custom_metrics().items()):
            name, metric_type, help_text = CUSTOM_METRIC_EXPORTS.get(
                metric_name, (f'tokenpulse_{metric_name}_total', 'counter', metric_name)
            )
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} {metric_type}")
            for tags, value in sorted(series.items()):
                lines.append(f"{name}{prometheus_labels(tags)} {value}")

        return '\n'.join(lines), 200, {'Content-Type': 'text/plain'}

def track_proxy_forward(status_code: int, response_time_ms: int):
    """
    Track a forwarded proxy request.

    Args:
        status_code: Status relayed to the client
        response_time_ms: Time spent waiting on the upstream
    """
    tags = [f'status:{status_code // 100}xx']

    monitoring.track_custom_metric('proxy_forwards', tags=tags)
    monitoring.track_custom_metric('proxy_response_time_ms', response_time_ms, tags=tags)

def track_upstream_fallback(kind: str, token: str):
    """
    Track a prediction or sentiment call that fell back to synthetic data.

    Only records when called inside an application context; the orchestrator
    also runs from the command line.

    Args:
        kind: 'predictions' or 'sentiment'
        token: Token identifier
    """
    if not has_app_context():
        return
    monitoring.track_custom_metric('upstream_fallbacks', tags=[f'kind:{kind}', f'token:{token}'])
