"""
Content Portal
Notification Blueprint.

Endpoints (all under /api/v1):
    GET  /notifications                — the caller's notifications, newest first
    POST /notifications/<id>/read      — mark one as read
    POST /notifications/read-all       — mark all as read
"""

from flask import Blueprint, jsonify, request

from portal.middleware.identity import current_actor
from portal.services.notification import NotificationService
from portal.utils.errors import register_error_handlers

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    actor = current_actor()
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = request.args.get("offset", 0, type=int)
    items = NotificationService.list_for_user(actor.user_id, unread_only=unread_only,
                                              limit=limit, offset=offset)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "unread_count": NotificationService.unread_count(actor.user_id),
    })


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    actor = current_actor()
    notif = NotificationService.mark_read(notification_id, actor.user_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    actor = current_actor()
    count = NotificationService.mark_all_read(actor.user_id)
    return jsonify({"marked_read": count})
