"""
Reverse proxy for TokenPulse.
Forwards browser requests under the proxy prefix to the upstream inference
service, rewriting the prefix to the upstream base path.
"""

import logging
import time
from typing import Dict, Iterable, Optional
from urllib.parse import quote, urlsplit
import requests
from flask import Blueprint, Response, request, current_app

from utils.error_handlers import BadGatewayError, GatewayTimeoutError
from utils.monitoring import track_proxy_forward

# Setup logging
logger = logging.getLogger(__name__)

# Create blueprint
reverse_proxy_bp = Blueprint('reverse_proxy', __name__)

PROXY_METHODS = ['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']

# Headers that describe a single connection and must not be forwarded
HOP_BY_HOP_HEADERS = frozenset([
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
])

# RFC 3986 pchar delimiters plus "/"; everything else in a decoded path is re-encoded
PATH_SAFE_CHARACTERS = "/:@!$&'()*+,;=~"

def rewrite_path(path: str, prefix: str, base_path: str) -> Optional[str]:
    """
    Rewrite a client-facing path onto the upstream base path.

    Args:
        path: Inbound request path, e.g. '/api/llama/chat'
        prefix: Proxy prefix, e.g. '/api/llama'
        base_path: Upstream base path, e.g. '/v1'

    Returns:
        The upstream path ('/v1/chat'), or None if the path is not under the prefix
    """
    prefix = prefix.rstrip('/')
    if path != prefix and not path.startswith(prefix + '/'):
        return None

    remainder = path[len(prefix):]
    base_path = base_path.rstrip('/')
    rewritten = f"{base_path}{remainder}"
    return rewritten or '/'

def encoded_request_path() -> str:
    """
    The request path as the client sent it, percent-encoding intact.

    Flask's ``request.path`` is decoded, which would turn an encoded '%3F'
    into a query separator. The raw request URI is used when the server
    provides one; otherwise the decoded path is re-encoded.
    """
    raw_uri = request.environ.get('RAW_URI') or request.environ.get('REQUEST_URI')
    if raw_uri:
        return urlsplit(raw_uri).path
    return quote(request.path, safe=PATH_SAFE_CHARACTERS)

def build_upstream_url(origin: str, path: str, query_string: str = '') -> str:
    """
    Join the upstream origin, the rewritten path and the raw query string.

    Args:
        origin: Upstream origin, e.g. 'https://llamatool.us.gaianet.network'
        path: Rewritten upstream path
        query_string: Raw query string without the leading '?'

    Returns:
        Absolute upstream URL
    """
    url = f"{origin.rstrip('/')}{path}"
    if query_string:
        url = f"{url}?{query_string}"
    return url

def filter_request_headers(headers: Iterable, upstream_origin: str) -> Dict[str, str]:
    """
    Prepare inbound headers for the upstream request.

    The Host header is replaced with the upstream host so the upstream sees
    itself as the target.

    Args:
        headers: Inbound (name, value) header pairs
        upstream_origin: Upstream origin URL

    Returns:
        Header dictionary for the forwarded request
    """
    forwarded = {
        name: value
        for name, value in headers
        if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in ('host', 'content-length')
    }
    forwarded['Host'] = urlsplit(upstream_origin).netloc
    return forwarded

def filter_response_headers(headers) -> Dict[str, str]:
    """
    Drop connection-level headers from the upstream response.

    Content-Encoding and Content-Length are dropped as well because the body
    relayed is the decoded one.
    """
    excluded = HOP_BY_HOP_HEADERS | {'content-encoding', 'content-length'}
    return {name: value for name, value in headers.items() if name.lower() not in excluded}

def forward(upstream_path: str) -> Response:
    """
    Forward the current request to the upstream and relay its response.

    Upstream responses of any status are relayed unchanged. Only when no
    upstream response exists is a gateway error produced.

    Args:
        upstream_path: Rewritten upstream path, still percent-encoded

    Returns:
        Flask response

    Raises:
        GatewayTimeoutError: If the upstream did not answer in time
        BadGatewayError: If the upstream could not be reached
    """
    upstream_origin = current_app.config['UPSTREAM_ORIGIN']
    url = build_upstream_url(upstream_origin, upstream_path, request.query_string.decode('latin-1'))
    start_time = time.time()

    try:
        upstream = requests.request(
            request.method,
            url,
            headers=filter_request_headers(request.headers.items(), upstream_origin),
            data=request.get_data(),
            allow_redirects=False,
            timeout=current_app.config.get('PROXY_TIMEOUT', 60)
        )

    except requests.exceptions.Timeout as e:
        logger.error(f"Upstream request timeout: {request.method} {url}")
        track_proxy_forward(504, int((time.time() - start_time) * 1000))
        raise GatewayTimeoutError() from e

    except requests.exceptions.ConnectionError as e:
        logger.error(f"Cannot connect to upstream {upstream_origin}: {str(e)}")
        track_proxy_forward(502, int((time.time() - start_time) * 1000))
        raise BadGatewayError() from e

    except requests.exceptions.RequestException as e:
        logger.error(f"Request error to upstream: {str(e)}")
        track_proxy_forward(502, int((time.time() - start_time) * 1000))
        raise BadGatewayError('Failed to forward request upstream') from e

    response_time_ms = int((time.time() - start_time) * 1000)
    track_proxy_forward(upstream.status_code, response_time_ms)
    logger.info(f"Proxied {request.method} {request.path} -> {url}: {upstream.status_code} ({response_time_ms}ms)")

    return Response(
        upstream.content,
        status=upstream.status_code,
        headers=filter_response_headers(upstream.headers)
    )

@reverse_proxy_bp.route('', defaults={'subpath': ''}, methods=PROXY_METHODS)
@reverse_proxy_bp.route('/', defaults={'subpath': ''}, methods=PROXY_METHODS)
@reverse_proxy_bp.route('/<path:subpath>', methods=PROXY_METHODS)
def proxy(subpath):
    """
    Proxy any request under the prefix to the upstream.

    Example:
        POST /api/llama/chat  ->  POST <UPSTREAM_ORIGIN>/v1/chat
    """
    prefix = current_app.config['PROXY_PREFIX']
    base_path = current_app.config['UPSTREAM_BASE_PATH']

    upstream_path = rewrite_path(encoded_request_path(), prefix, base_path)
    if upstream_path is None:
        # Client percent-encoded part of the prefix itself
        upstream_path = rewrite_path(quote(request.path, safe=PATH_SAFE_CHARACTERS), prefix, base_path)
    return forward(upstream_path)
