from flask import Response, current_app, jsonify, stream_with_context

from pickem import limiter, live_channel
from pickem.routes.live import bp

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


@bp.route("/stream")
@limiter.exempt
def stream():
    """Server-Sent Events stream of live pick/score events"""
    subscription = live_channel.subscribe()
    heartbeat = current_app.config.get("LIVE_HEARTBEAT_SECONDS")
    return Response(
        stream_with_context(live_channel.sse_stream(subscription, heartbeat)),
        mimetype="text/event-stream",
        headers=SSE_HEADERS,
    )


@bp.route("/config")
def client_config():
    """Reconnect and polling values live clients are expected to honour"""
    config = current_app.config
    return jsonify(
        {
            "success": True,
            "data": {
                "heartbeatSeconds": config.get("LIVE_HEARTBEAT_SECONDS"),
                "debounceMs": config.get("LIVE_DEBOUNCE_MS"),
                "pollSeconds": config.get("LIVE_POLL_SECONDS"),
                "staleSeconds": config.get("LIVE_STALE_SECONDS"),
                "maxReconnectAttempts": config.get("LIVE_MAX_RECONNECT_ATTEMPTS"),
                "subscribers": live_channel.subscriber_count,
            },
        }
    )
