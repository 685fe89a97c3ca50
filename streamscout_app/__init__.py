# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import time
import uuid
from typing import Optional

from flask import Flask, jsonify, request
from flask import g

__version__ = "1.0.0"


def create_app(settings=None, services=None):
    """
    Create and configure an instance of the Flask application.

    Args:
        settings: Settings to use (read from the environment when omitted)
        services: Prebuilt PipelineServices (tests inject fakes here)
    """
    from .config import Settings, INSTANCE_DIR
    from .errors import UpstreamError, ValidationError
    from .log import configure_logging, debug_log_event, log
    from .rate_limit import init_rate_limiting
    from .routes import EXTENSION_KEY
    from .services import build_services

    settings = settings or (services.settings if services is not None else Settings.from_env())

    app = Flask(__name__, instance_path=INSTANCE_DIR)

    # =============================================================================
    # CONFIGURATION
    # =============================================================================
    app.json.sort_keys = False
    app.config.from_mapping(
        DISABLE_RATE_LIMITING=settings.disable_rate_limiting,
        HOST=settings.host,
        PORT=settings.port,
        DEBUG=settings.debug,
    )

    # =============================================================================
    # LOGGING and RATE LIMITING
    # =============================================================================
    configure_logging(app.instance_path, debug_logging=settings.debug_logging)
    init_rate_limiting(app)

    @app.before_request
    def assign_request_id():
        g.request_id = uuid.uuid4().hex[:12]
        g.request_start = time.time()

    @app.after_request
    def debug_request_log(response):
        duration_ms: Optional[int] = None
        start_time = getattr(g, 'request_start', None)
        if start_time:
            duration_ms = int((time.time() - start_time) * 1000)
        debug_log_event({
            'event': 'request',
            'request_id': getattr(g, 'request_id', None),
            'method': request.method,
            'path': request.path,
            'query': request.query_string.decode('utf-8', errors='ignore'),
            'status': response.status_code,
            'duration_ms': duration_ms,
            'remote_addr': request.remote_addr,
        })
        return response

    @app.teardown_request
    def debug_exception_log(error=None):
        if not error:
            return
        debug_log_event({
            'event': 'exception',
            'request_id': getattr(g, 'request_id', None),
            'error_type': error.__class__.__name__,
            'error': str(error),
        })

    # =============================================================================
    # ERROR HANDLERS
    # =============================================================================
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        payload = {'error': e.message}
        if e.field:
            payload['field'] = e.field
        return jsonify(payload), 400

    @app.errorhandler(UpstreamError)
    def handle_upstream_error(e):
        log(f"❌ Upstream error on {request.path}: {e}")
        status = e.status_code if 400 <= e.status_code < 600 else 502
        return jsonify({'error': e.message}), status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(e):
        log(f"❌ Internal server error on {request.path}: {e}")
        return jsonify({'error': 'Internal server error'}), 500

    # =============================================================================
    # SERVICES
    # =============================================================================
    if services is None:
        services = build_services(settings)
    app.extensions[EXTENSION_KEY] = services

    # =============================================================================
    # BLUEPRINTS & ROUTES
    # =============================================================================
    from .routes.main_api import main_bp
    from .routes.search_api import search_bp
    from .routes.providers_api import providers_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(search_bp)
    app.register_blueprint(providers_bp)

    return app
