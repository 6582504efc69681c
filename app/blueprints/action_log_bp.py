"""
Project Tracker
Action log blueprint — standalone action registers, their items and the
per-item requirement checklists.

Endpoints summary (prefix /api/v1):
    LOG          /action-logs                                        GET, POST
                 /action-logs/<id>                                   GET, PUT, DELETE
    ITEM         /action-logs/<id>/items                             GET, POST
                 /action-logs/<id>/items/<iid>                       PUT, DELETE
    REQUIREMENT  /action-logs/<id>/items/<iid>/requirements          GET, POST
                 /action-logs/<id>/items/<iid>/requirements/<rid>    PUT, DELETE

GET /action-logs accepts project_id, status and search (name, number or
description) plus limit/offset.
"""

from flask import Blueprint, jsonify, request

from app.blueprints import json_body, paginate_query
from app.services import action_log_service

action_log_bp = Blueprint("action_logs", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# ACTION LOGS
# ═════════════════════════════════════════════════════════════════════════════


@action_log_bp.route("/action-logs", methods=["GET"])
def list_action_logs():
    q = action_log_service.list_action_logs(
        project_id=request.args.get("project_id", type=int),
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


@action_log_bp.route("/action-logs", methods=["POST"])
def create_action_log():
    data = json_body()
    action_log = action_log_service.create_action_log(data, actor_id=data.get("actor_id"))
    return jsonify(action_log.to_dict()), 201


@action_log_bp.route("/action-logs/<int:log_id>", methods=["GET"])
def get_action_log(log_id):
    return jsonify(action_log_service.action_log_detail(log_id))


@action_log_bp.route("/action-logs/<int:log_id>", methods=["PUT"])
def update_action_log(log_id):
    action_log = action_log_service.update_action_log(log_id, json_body())
    return jsonify(action_log.to_dict())


@action_log_bp.route("/action-logs/<int:log_id>", methods=["DELETE"])
def delete_action_log(log_id):
    action_log_service.delete_action_log(log_id)
    return jsonify({"message": "Action log deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# ITEMS
# ═════════════════════════════════════════════════════════════════════════════


@action_log_bp.route("/action-logs/<int:log_id>/items", methods=["GET"])
def list_items(log_id):
    items = action_log_service.list_items(log_id, status=request.args.get("status"))
    return jsonify({"items": [i.to_dict() for i in items], "total": len(items)})


@action_log_bp.route("/action-logs/<int:log_id>/items", methods=["POST"])
def create_item(log_id):
    data = json_body()
    item = action_log_service.create_item(log_id, data, actor_id=data.get("actor_id"))
    return jsonify(item.to_dict()), 201


@action_log_bp.route("/action-logs/<int:log_id>/items/<int:item_id>", methods=["PUT"])
def update_item(log_id, item_id):
    item = action_log_service.update_item(log_id, item_id, json_body())
    return jsonify(item.to_dict())


@action_log_bp.route("/action-logs/<int:log_id>/items/<int:item_id>", methods=["DELETE"])
def delete_item(log_id, item_id):
    action_log_service.delete_item(log_id, item_id)
    return jsonify({"message": "Action item deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# REQUIREMENTS
# ═════════════════════════════════════════════════════════════════════════════


@action_log_bp.route("/action-logs/<int:log_id>/items/<int:item_id>/requirements", methods=["GET"])
def list_requirements(log_id, item_id):
    reqs = action_log_service.list_requirements(log_id, item_id)
    return jsonify({"items": [r.to_dict() for r in reqs], "total": len(reqs)})


@action_log_bp.route("/action-logs/<int:log_id>/items/<int:item_id>/requirements", methods=["POST"])
def create_requirement(log_id, item_id):
    data = json_body()
    req = action_log_service.create_requirement(log_id, item_id, data, actor_id=data.get("actor_id"))
    return jsonify(req.to_dict()), 201


@action_log_bp.route(
    "/action-logs/<int:log_id>/items/<int:item_id>/requirements/<int:requirement_id>", methods=["PUT"],
)
def update_requirement(log_id, item_id, requirement_id):
    data = json_body()
    req = action_log_service.update_requirement(
        log_id, item_id, requirement_id, data, actor_id=data.get("actor_id"),
    )
    return jsonify(req.to_dict())


@action_log_bp.route(
    "/action-logs/<int:log_id>/items/<int:item_id>/requirements/<int:requirement_id>", methods=["DELETE"],
)
def delete_requirement(log_id, item_id, requirement_id):
    action_log_service.delete_requirement(log_id, item_id, requirement_id)
    return jsonify({"message": "Requirement deleted"}), 200
