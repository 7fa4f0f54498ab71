# Overview: Server-Sent Events endpoint streaming the tenant's change feed.

# backend/agendo/routes/realtime.py
"""Real-time feed API route"""

from flask import Blueprint, Response, g, jsonify, request, stream_with_context

from ..decorators import require_actor
from ..services.realtime_service import SYNCED_TABLES, event_stream, feed


realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/realtime")


@realtime_bp.get("/stream")
@require_actor
def stream_route():
    """
    Stream {table, event_type, old, new} deltas of the caller's tenant.

    Query: tables (comma separated subset of the synced tables),
    heartbeat (seconds between keep-alive comments, default 15)
    """
    tables = None
    raw_tables = request.args.get("tables")
    if raw_tables:
        tables = {t.strip() for t in raw_tables.split(",") if t.strip()}
        unknown = tables - SYNCED_TABLES
        if unknown:
            return jsonify({"error": f"Unknown tables: {', '.join(sorted(unknown))}"}), 400

    heartbeat = request.args.get("heartbeat", default=15.0, type=float)
    subscription = feed.subscribe(g.actor.tenant_id, tables)

    return Response(
        stream_with_context(event_stream(subscription, heartbeat_seconds=max(1.0, heartbeat))),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
