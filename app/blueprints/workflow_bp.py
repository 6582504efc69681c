"""
Project Tracker
Workflow blueprint — one route set for issues, risks, changes, escalations
and faults, plus the closure gate and change approval endpoints.

Endpoints summary (prefix /api/v1, <c> = issues|risks|changes|escalations|faults):
    ENTITY   /<c>                                 GET, POST
             /<c>/<id>                            GET, PUT, DELETE
    LOG      /<c>/<id>/log                        GET, POST   (comment)
    ACTION   /<c>/<id>/actions                    GET, POST
             /<c>/<id>/actions/<aid>              PUT, DELETE
    CLOSURE  /<risks|changes>/<id>/closure         GET
             /<risks|changes>/<id>/request-closure POST
             /<risks|changes>/<id>/approve-closure POST
             /<risks|changes>/<id>/reject-closure  POST
    CHANGE   /changes/<id>/request-approval        POST
             /changes/<id>/approve                 POST
             /changes/<id>/reject                  POST
    PENDING  /approvals/pending                    GET

Every mutating body may carry ``actor_id`` (the acting person) and
``version`` (the entity version the caller last read).
"""

from flask import Blueprint, jsonify, request

from app.blueprints import json_body, paginate_query
from app.services import action_service, change_approval, closure_gate, workflow_service
from app.services.report_service import pending_approvals

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")

COLLECTIONS = {
    "issues": "issue",
    "risks": "risk",
    "changes": "change",
    "escalations": "escalation",
    "faults": "fault",
}

_ANY = "<any(issues, risks, changes, escalations, faults):collection>"
_GATED = "<any(risks, changes):collection>"

# Query-string keys passed through to list_entities
_LIST_FILTERS = (
    "project_id", "status", "priority", "severity", "assigned_to", "raised_by",
    "search", "risk_score_min", "risk_score_max",
)


def _entity_response(entity_type, entity, status=200):
    return jsonify(workflow_service.serialize_entity(entity_type, entity)), status


# ═════════════════════════════════════════════════════════════════════════════
# ENTITY CRUD
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route(f"/{_ANY}", methods=["GET"])
def list_entities(collection):
    entity_type = COLLECTIONS[collection]
    filters = {k: request.args.get(k) for k in _LIST_FILTERS if request.args.get(k) not in (None, "")}
    q = workflow_service.list_entities(entity_type, filters)
    items, total = paginate_query(q)
    return jsonify({"items": [e.to_dict() for e in items], "total": total})


@workflow_bp.route(f"/{_ANY}", methods=["POST"])
def create_entity(collection):
    entity_type = COLLECTIONS[collection]
    data = json_body()
    entity = workflow_service.create_entity(
        entity_type, data.get("project_id"), data, actor_id=data.get("actor_id"),
    )
    return _entity_response(entity_type, entity, 201)


@workflow_bp.route(f"/{_ANY}/<int:entity_id>", methods=["GET"])
def get_entity(collection, entity_id):
    return jsonify(workflow_service.get_entity(COLLECTIONS[collection], entity_id))


@workflow_bp.route(f"/{_ANY}/<int:entity_id>", methods=["PUT"])
def update_entity(collection, entity_id):
    entity_type = COLLECTIONS[collection]
    data = json_body()
    entity = workflow_service.update_entity(
        entity_type, entity_id, data, actor_id=data.get("actor_id"),
    )
    return _entity_response(entity_type, entity)


@workflow_bp.route(f"/{_ANY}/<int:entity_id>", methods=["DELETE"])
def delete_entity(collection, entity_id):
    entity_type = COLLECTIONS[collection]
    data = json_body()
    workflow_service.delete_entity(entity_type, entity_id, actor_id=data.get("actor_id"))
    label = workflow_service.get_workflow_type(entity_type).label
    return jsonify({"message": f"{label} deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# LOG
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route(f"/{_ANY}/<int:entity_id>/log", methods=["GET"])
def list_log(collection, entity_id):
    wtype, entity = workflow_service.load_entity(COLLECTIONS[collection], entity_id)
    entries, total = paginate_query(workflow_service.log_query(wtype.key, entity.id))
    return jsonify({"items": [e.to_dict() for e in entries], "total": total})


@workflow_bp.route(f"/{_ANY}/<int:entity_id>/log", methods=["POST"])
def add_log_entry(collection, entity_id):
    data = json_body()
    entry = workflow_service.add_log_entry(
        COLLECTIONS[collection], entity_id, data.get("actor_id"), data.get("comments"),
    )
    return jsonify(entry.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# ACTIONS
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route(f"/{_ANY}/<int:entity_id>/actions", methods=["GET"])
def list_actions(collection, entity_id):
    actions = action_service.list_actions(
        COLLECTIONS[collection], entity_id, status=request.args.get("status"),
    )
    return jsonify({"items": [a.to_dict() for a in actions], "total": len(actions)})


@workflow_bp.route(f"/{_ANY}/<int:entity_id>/actions", methods=["POST"])
def create_action(collection, entity_id):
    data = json_body()
    action = action_service.create_action(
        COLLECTIONS[collection], entity_id, data, actor_id=data.get("actor_id"),
    )
    return jsonify(action.to_dict()), 201


@workflow_bp.route(f"/{_ANY}/<int:entity_id>/actions/<int:action_id>", methods=["PUT"])
def update_action(collection, entity_id, action_id):
    data = json_body()
    action = action_service.update_action(
        COLLECTIONS[collection], entity_id, action_id, data, actor_id=data.get("actor_id"),
    )
    return jsonify(action.to_dict())


@workflow_bp.route(f"/{_ANY}/<int:entity_id>/actions/<int:action_id>", methods=["DELETE"])
def delete_action(collection, entity_id, action_id):
    data = json_body()
    action_service.delete_action(
        COLLECTIONS[collection], entity_id, action_id, actor_id=data.get("actor_id"),
    )
    return jsonify({"message": "Action deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# CLOSURE GATE
# ═════════════════════════════════════════════════════════════════════════════


def _closure_response(entity_type, entity_id, req, status=200):
    entity = workflow_service.get_entity(entity_type, entity_id)
    return jsonify({"closure_request": req.to_dict(), "entity": entity}), status


@workflow_bp.route(f"/{_GATED}/<int:entity_id>/closure", methods=["GET"])
def closure_status(collection, entity_id):
    return jsonify(closure_gate.closure_status(COLLECTIONS[collection], entity_id))


@workflow_bp.route(f"/{_GATED}/<int:entity_id>/request-closure", methods=["POST"])
def request_closure(collection, entity_id):
    entity_type = COLLECTIONS[collection]
    data = json_body()
    req = closure_gate.request_closure(
        entity_type, entity_id,
        actor_id=data.get("actor_id"),
        justification=data.get("justification") or data.get("closure_justification") or "",
        version=data.get("version"),
    )
    return _closure_response(entity_type, entity_id, req, 201)


@workflow_bp.route(f"/{_GATED}/<int:entity_id>/approve-closure", methods=["POST"])
def approve_closure(collection, entity_id):
    entity_type = COLLECTIONS[collection]
    data = json_body()
    req = closure_gate.approve_closure(
        entity_type, entity_id,
        actor_id=data.get("actor_id"),
        comments=data.get("comments") or data.get("approval_comments") or "",
        version=data.get("version"),
    )
    return _closure_response(entity_type, entity_id, req)


@workflow_bp.route(f"/{_GATED}/<int:entity_id>/reject-closure", methods=["POST"])
def reject_closure(collection, entity_id):
    entity_type = COLLECTIONS[collection]
    data = json_body()
    req = closure_gate.reject_closure(
        entity_type, entity_id,
        actor_id=data.get("actor_id"),
        reason=data.get("reason") or data.get("rejection_reason") or "",
        version=data.get("version"),
    )
    return _closure_response(entity_type, entity_id, req)


# ═════════════════════════════════════════════════════════════════════════════
# CHANGE APPROVAL
# ═════════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/changes/<int:change_id>/request-approval", methods=["POST"])
def request_change_approval(change_id):
    data = json_body()
    change = change_approval.request_review(
        change_id,
        actor_id=data.get("actor_id"),
        comments=data.get("comments") or data.get("approval_justification") or "",
        version=data.get("version"),
    )
    return _entity_response("change", change)


@workflow_bp.route("/changes/<int:change_id>/approve", methods=["POST"])
def approve_change(change_id):
    data = json_body()
    change = change_approval.approve_change(
        change_id,
        actor_id=data.get("actor_id"),
        comments=data.get("comments") or data.get("approval_comments") or "",
        version=data.get("version"),
    )
    return _entity_response("change", change)


@workflow_bp.route("/changes/<int:change_id>/reject", methods=["POST"])
def reject_change(change_id):
    data = json_body()
    change = change_approval.reject_change(
        change_id,
        actor_id=data.get("actor_id"),
        reason=data.get("reason") or data.get("rejection_reason") or "",
        version=data.get("version"),
    )
    return _entity_response("change", change)


@workflow_bp.route("/approvals/pending", methods=["GET"])
def list_pending_approvals():
    return jsonify(pending_approvals(request.args.get("project_id", type=int)))
