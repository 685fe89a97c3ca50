"""Availability API Blueprint.

Where-to-watch lookups for single titles, one bounded batch, or any number of
titles streamed back chunk by chunk as NDJSON.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import Blueprint, Response, jsonify, request

from streamscout_app.catalog.models import ProviderSet
from streamscout_app.errors import UpstreamError, ValidationError
from streamscout_app.log import log
from streamscout_app.rate_limit import limit_heavy, limit_medium
from streamscout_app.search.models import AvailabilityRecord
from streamscout_app.search.streaming import (
    get_external_links, get_primary_external_link, get_streaming_status,
)
from . import get_services
from .validators import MAX_RESOLVE_ITEMS, validate_items, validate_title_params


providers_bp = Blueprint('providers_api', __name__)


def _upstream_status(error: UpstreamError) -> int:
    if 400 <= error.status_code < 600:
        return error.status_code
    return 500


def _record_dict(record: AvailabilityRecord, region: str) -> Dict[str, Any]:
    data = record.to_dict()
    data['streaming'] = get_streaming_status(record.providers, region).to_dict()
    return data


@providers_bp.route('/api/providers', methods=['GET'])
@limit_medium
def get_providers():
    """
    Watch providers for one title in the configured region.

    Query params:
        id: TMDB id
        type: "movie" or "tv"
    """
    item_id, kind, error = validate_title_params(request.args)
    if error:
        return jsonify({'error': error}), 400

    services = get_services()
    region = services.pipeline.region
    try:
        providers: Optional[ProviderSet] = services.run(services.pipeline.get_providers(item_id, kind))
    except UpstreamError as e:
        log(f"❌ Providers lookup failed for {kind.value}/{item_id}: {e}")
        return jsonify({'error': e.message}), _upstream_status(e)

    return jsonify({
        'id': item_id,
        'region': region,
        'providers': (providers or ProviderSet()).to_dict(),
        'streaming': get_streaming_status(providers, region).to_dict(),
    })


@providers_bp.route('/api/providers/batch', methods=['POST'])
@limit_heavy
def get_providers_batch():
    """
    Providers for one batch of titles.

    Body:
        {"items": [{"id": 1396, "media_type": "tv"}, ...]}  (at most 50)

    Items that cannot be resolved come back with providers=null.
    """
    payload = request.get_json(silent=True) or {}
    items, error = validate_items(payload)
    if error:
        return jsonify({'success': False, 'error': error, 'resultCount': 0}), 400

    services = get_services()
    region = services.pipeline.region
    try:
        records = services.run(services.pipeline.fetch_providers_batch(items))
    except ValidationError as e:
        return jsonify({'success': False, 'error': e.message, 'resultCount': 0}), 400

    results = [_record_dict(record, region) for record in records]
    return jsonify({
        'success': True,
        'results': results,
        'resultCount': len(results),
    })


@providers_bp.route('/api/providers/resolve', methods=['POST'])
@limit_heavy
def resolve_providers():
    """
    Progressive availability for any number of titles.

    Streams one JSON line per chunk. Each line carries the chunk's own
    results plus the merged provider map so far; the last line has done=true.
    """
    payload = request.get_json(silent=True) or {}
    items, error = validate_items(payload, max_items=MAX_RESOLVE_ITEMS)
    if error:
        return jsonify({'success': False, 'error': error}), 400

    services = get_services()
    region = services.pipeline.region
    snapshots = services.runner.iterate(services.pipeline.resolve_availability(items))

    def generate():
        for snapshot in snapshots:
            data = snapshot.to_dict()
            data['results'] = [_record_dict(record, region) for record in snapshot.chunk_records]
            yield json.dumps(data, separators=(',', ':')) + '\n'

    log(f"📡 Resolving availability for {len(items)} titles")
    return Response(generate(), mimetype='application/x-ndjson')


@providers_bp.route('/api/external-ids', methods=['GET'])
@limit_medium
def get_external_ids():
    """External ids (IMDb, TVDB, ...) and outbound links for one title."""
    item_id, kind, error = validate_title_params(request.args)
    if error:
        return jsonify({'error': error}), 400

    services = get_services()
    try:
        external_ids = services.run(services.pipeline.get_external_ids(item_id, kind))
    except UpstreamError as e:
        log(f"❌ External ids lookup failed for {kind.value}/{item_id}: {e}")
        return jsonify({'success': False, 'error': e.message}), _upstream_status(e)

    primary = get_primary_external_link(external_ids)
    return jsonify({
        'success': True,
        'external_ids': external_ids.to_dict(),
        'links': [link.to_dict() for link in get_external_links(external_ids)],
        'primaryLink': primary.to_dict() if primary else None,
    })
