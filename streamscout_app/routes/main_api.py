from datetime import datetime, timezone
import queue

from flask import Blueprint, jsonify

from streamscout_app import __version__
from streamscout_app.log import log, msg_queue
from streamscout_app.rate_limit import limit_light, limit_medium
from . import get_services

main_bp = Blueprint('main_api', __name__)


@main_bp.route('/api/health')
@limit_light
def health():
    """Liveness probe."""
    return jsonify({
        'status': 'ok',
        'message': 'API is healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'version': __version__,
    })


@main_bp.route('/api/init')
@limit_medium
def init_services():
    """Load the title corpus and build the match index ahead of the first search."""
    services = get_services()
    try:
        stats = services.run(services.pipeline.warm_up())
    except Exception as e:
        log(f"❌ Service initialization failed: {e}")
        return jsonify({
            'success': False,
            'error': 'Failed to initialize services',
            'details': str(e),
        }), 500

    log(f"🚀 Services initialized ({stats['corpus']['total']} titles indexed)")
    return jsonify({
        'success': True,
        'message': 'Services initialized successfully',
        'stats': stats,
    })


@main_bp.route('/api/logs')
@limit_light
def get_logs():
    """Get pending log messages."""
    messages = []
    while not msg_queue.empty():
        try:
            messages.append(msg_queue.get_nowait())
        except queue.Empty:
            break
    return jsonify({'logs': messages})
