"""
SocketIO Event Handlers for Real-time Updates

This module bridges the in-process live channel onto Socket.IO for clients
that prefer a websocket transport over the SSE stream.
"""

import logging

from flask import request
from flask_login import current_user
from flask_socketio import emit, join_room, leave_room

from pickem import socketio
from pickem.errors import ValidationError
from pickem.services.pick_store import validate_week

logger = logging.getLogger(__name__)

NAMESPACE = "/live"

# Track connected clients and their subscriptions
connected_users = {}


@socketio.on("connect", namespace=NAMESPACE)
def on_connect():
    """Handle client connection to the live namespace"""
    try:
        user_id = current_user.id if current_user.is_authenticated else None
        client_id = request.sid

        logger.info(f"Client connected to {NAMESPACE}: {client_id} (user: {user_id})")

        connected_users[client_id] = {"user_id": user_id, "subscriptions": set()}
        emit("connected", {"userId": user_id})

    except Exception as e:
        logger.error(f"Error in live connect: {e}")


@socketio.on("disconnect", namespace=NAMESPACE)
def on_disconnect():
    """Handle client disconnection from the live namespace"""
    try:
        client_id = request.sid
        if client_id in connected_users:
            user_id = connected_users[client_id]["user_id"]
            logger.info(f"Client disconnected from {NAMESPACE}: {client_id} (user: {user_id})")
            del connected_users[client_id]
    except Exception as e:
        logger.error(f"Error in live disconnect: {e}")


@socketio.on("subscribe_week", namespace=NAMESPACE)
def on_subscribe_week(data):
    """Subscribe to events for one week"""
    try:
        client_id = request.sid
        week = validate_week((data or {}).get("week"))

        if client_id in connected_users:
            room_name = f"week_{week}"

            # Skip if already subscribed
            if room_name in connected_users[client_id]["subscriptions"]:
                return

            connected_users[client_id]["subscriptions"].add(room_name)
            join_room(room_name)
            logger.debug(f"Client {client_id} subscribed to week {week}")

    except ValidationError as e:
        emit("error", {"error": e.message, "field": e.field})
    except Exception as e:
        logger.error(f"Error in subscribe_week: {e}")


@socketio.on("unsubscribe_week", namespace=NAMESPACE)
def on_unsubscribe_week(data):
    """Unsubscribe from events for one week"""
    try:
        client_id = request.sid
        week = (data or {}).get("week")

        if client_id in connected_users and week is not None:
            connected_users[client_id]["subscriptions"].discard(f"week_{week}")
            leave_room(f"week_{week}")

            logger.debug(f"Client {client_id} unsubscribed from week {week}")
    except Exception as e:
        logger.error(f"Error in unsubscribe_week: {e}")


def broadcast_live_event(event):
    """Re-emit a live channel event to Socket.IO clients"""
    week = (event.get("payload") or {}).get("week")
    if week is not None:
        socketio.emit(event["type"], event, room=f"week_{week}", namespace=NAMESPACE)
    socketio.emit("live_event", event, namespace=NAMESPACE)
    logger.debug(f"Broadcasted {event['type']} for week {week}")


def register_live_bridge(channel):
    """Forward every event published on the live channel"""
    channel.add_listener(broadcast_live_event)


def get_connection_stats():
    """Get detailed connection statistics"""
    return {
        "total_connections": len(connected_users),
        "authenticated_users": len(
            [u for u in connected_users.values() if u["user_id"]]
        ),
        "anonymous_users": len(
            [u for u in connected_users.values() if not u["user_id"]]
        ),
        "total_subscriptions": sum(
            len(u["subscriptions"]) for u in connected_users.values()
        ),
    }
