"""
Rate limiting configuration for the StreamScout API.

Uses Flask-Limiter to keep a single client from burning through the upstream
catalog quota.

Rate Limit Tiers:
- Heavy: /api/search, /api/providers/batch, /api/providers/resolve (fan out upstream)
- Medium: /api/providers, /api/external-ids, /api/init (one or two upstream calls)
- Light: /api/health, /api/logs, suggestions, cache stats (local only)
"""

import os
from flask import jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize limiter (attached to the app in create_app)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "500 per hour"],
    storage_uri=os.environ.get("RATELIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
    headers_enabled=True,  # Add X-RateLimit-* headers to responses
)


# ==============================================================================
# RATE LIMIT TIERS
# ==============================================================================

# Heavy operations - several upstream requests per call
HEAVY_LIMIT = "30 per minute"

# Medium operations - a single upstream request
MEDIUM_LIMIT = "60 per minute"

# Light operations - served from memory
LIGHT_LIMIT = "120 per minute"


# ==============================================================================
# RATE LIMIT DECORATORS
# ==============================================================================

def limit_heavy(f):
    """Apply heavy rate limit to search and batch availability."""
    return limiter.limit(HEAVY_LIMIT)(f)


def limit_medium(f):
    """Apply medium rate limit to single-title lookups."""
    return limiter.limit(MEDIUM_LIMIT)(f)


def limit_light(f):
    """Apply light rate limit to cheap operations."""
    return limiter.limit(LIGHT_LIMIT)(f)


# ==============================================================================
# ERROR HANDLER
# ==============================================================================

def rate_limit_exceeded_handler(e):
    """JSON body for every 429; the API has no HTML pages."""
    retry_after = getattr(e, 'retry_after', None) or 60
    response = jsonify({
        "error": "Rate limit exceeded",
        "message": str(e.description),
        "retry_after": retry_after,
    })
    response.status_code = 429
    response.headers['Retry-After'] = str(retry_after)
    return response


# ==============================================================================
# INITIALIZATION
# ==============================================================================

def init_rate_limiting(app):
    """
    Initialize rate limiting for a Flask app.

    Call this in create_app() after app configuration. DISABLE_RATE_LIMITING
    in app.config turns every limit off (tests, local development).
    """
    app.config.setdefault('RATELIMIT_ENABLED', not app.config.get('DISABLE_RATE_LIMITING', False))
    limiter.init_app(app)

    app.errorhandler(429)(rate_limit_exceeded_handler)

    return limiter
