"""Search API Blueprint.

Typo-tolerant catalog search, autocomplete suggestions, and result cache
maintenance.
"""
from __future__ import annotations

from typing import Optional

from flask import Blueprint, jsonify, request

from streamscout_app.errors import ValidationError
from streamscout_app.log import log
from streamscout_app.rate_limit import limit_heavy, limit_light
from . import get_services
from .validators import parse_bool, parse_limit, parse_page, sanitize_string


search_bp = Blueprint('search_api', __name__, url_prefix='/api/search')


def _error(message: str, field: Optional[str] = None, status: int = 400):
    payload = {'error': message}
    if field:
        payload['field'] = field
    return jsonify(payload), status


@search_bp.route('', methods=['GET'])
@limit_heavy
def search():
    """
    Search movies and series.

    Query params:
        query: Search text (required)
        page: 1-based page (default 1)
        region: Region for caching (defaults to the configured region)
        autocorrect: Re-search with the suggested title on a likely typo (default true)
        cache: Use the result cache (default true)
    """
    query = sanitize_string(request.args.get('query', ''))
    if not query:
        return _error('Query parameter is required', field='query')

    page, page_error = parse_page(request.args.get('page'))
    if page_error:
        return _error(page_error, field='page')

    region = sanitize_string(request.args.get('region', ''), max_length=2) or None
    auto_correct = parse_bool(request.args.get('autocorrect'), default=True)
    use_cache = parse_bool(request.args.get('cache'), default=True)

    services = get_services()
    try:
        result = services.run(services.pipeline.search(
            query,
            page=page,
            region=region,
            auto_correct=auto_correct,
            use_cache=use_cache,
        ))
    except ValidationError as e:
        return _error(e.message, field=e.field)

    if result.did_auto_correct:
        log(f"🔍 '{query}' auto-corrected to '{result.suggestion.suggested_title}'")
    return jsonify(result.to_dict())


@search_bp.route('/suggestions', methods=['GET'])
@limit_light
def suggestions():
    """Closest known titles for a partial or misspelled query."""
    query = sanitize_string(request.args.get('query', ''))
    if not query:
        return jsonify({'query': '', 'suggestions': []})

    limit = parse_limit(request.args.get('limit'))
    services = get_services()
    try:
        records = services.run(services.pipeline.autocomplete(query, limit))
    except ValidationError as e:
        return _error(e.message, field=e.field)

    return jsonify({
        'query': query,
        'suggestions': [record.to_dict() for record in records],
    })


@search_bp.route('/cache/stats', methods=['GET'])
@limit_light
def cache_stats():
    services = get_services()
    return jsonify(services.pipeline.cache.stats())


@search_bp.route('/cache/clear', methods=['POST'])
@limit_light
def cache_clear():
    services = get_services()
    services.pipeline.cache.clear()
    log("🗑️ Search cache cleared")
    return jsonify({'success': True, 'message': 'Search cache cleared'})
