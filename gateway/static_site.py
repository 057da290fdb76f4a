"""
Static bundle serving with single-page-application history fallback.
"""

import logging
import os
from flask import Blueprint, current_app, send_from_directory
from werkzeug.security import safe_join

logger = logging.getLogger(__name__)

static_site_bp = Blueprint('static_site', __name__)

def find_static_file(static_folder: str, path: str):
    """Return the absolute path of a file inside the bundle, or None."""
    if not path:
        return None
    candidate = safe_join(static_folder, path)
    if candidate and os.path.isfile(candidate):
        return candidate
    return None

@static_site_bp.route('/', defaults={'path': ''})
@static_site_bp.route('/<path:path>')
def serve(path):
    """Serve a bundle file, or the entry document for client-side routes."""
    static_folder = os.path.join(current_app.root_path, current_app.config['STATIC_FOLDER'])

    if find_static_file(static_folder, path):
        return send_from_directory(static_folder, path)

    index_document = current_app.config['INDEX_DOCUMENT']
    if not find_static_file(static_folder, index_document):
        logger.warning(f"Entry document {index_document} missing from {static_folder}")

    return send_from_directory(static_folder, index_document)
