from flask import Blueprint, jsonify, g, request

from app.services.messaging_service import messages_for_user, send_message
from app.utils.auth_guard import login_required
from app.utils.responses import service_error


messages_bp = Blueprint("messages_bp", __name__, url_prefix="/api/messages")


@messages_bp.get("")
@login_required
def list_messages():
    return jsonify(messages_for_user(int(g.current_user.id))), 200


@messages_bp.post("")
@login_required
def create_message():
    data = request.get_json(silent=True) or {}
    res = send_message(
        sender=g.current_user,
        listing_id=data.get("listingId"),
        receiver_id=data.get("receiverId"),
        body=data.get("message"),
    )
    if not res.get("ok"):
        return service_error(res)
    return jsonify({"ok": True, "message": "Message sent successfully", "data": res["data"]}), 201
