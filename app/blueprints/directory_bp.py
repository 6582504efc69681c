"""
Project Tracker
Directory blueprint — projects, people and project reports.

Endpoints summary (prefix /api/v1):
    PROJECT  /projects                              GET, POST
             /projects/<id>                         GET, PUT, DELETE
             /projects/<id>/reports/summary         GET
             /projects/<id>/reports/risk-matrix     GET
    DASH     /dashboard/quick-stats                 GET
    PERSON   /people                                GET, POST
             /people/<id>                           GET, PUT
"""

from flask import Blueprint, jsonify, request

from app.blueprints import json_body
from app.services import directory_service, report_service

directory_bp = Blueprint("directory", __name__, url_prefix="/api/v1")


# ── Projects ─────────────────────────────────────────────────────────────────


@directory_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = directory_service.list_projects(
        status=request.args.get("status"), search=request.args.get("search"),
    )
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@directory_bp.route("/projects", methods=["POST"])
def create_project():
    project = directory_service.create_project(json_body())
    return jsonify(project.to_dict()), 201


@directory_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(directory_service.get_project(project_id).to_dict())


@directory_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    project = directory_service.update_project(project_id, json_body())
    return jsonify(project.to_dict())


@directory_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    directory_service.delete_project(project_id)
    return jsonify({"message": "Project deleted"}), 200


@directory_bp.route("/projects/<int:project_id>/reports/summary", methods=["GET"])
def project_summary(project_id):
    return jsonify(report_service.project_summary(project_id))


@directory_bp.route("/projects/<int:project_id>/reports/risk-matrix", methods=["GET"])
def risk_matrix(project_id):
    return jsonify(report_service.risk_matrix(project_id))


@directory_bp.route("/dashboard/quick-stats", methods=["GET"])
def quick_stats():
    return jsonify(report_service.quick_stats(request.args.get("project_id", type=int)))


# ── People ───────────────────────────────────────────────────────────────────


@directory_bp.route("/people", methods=["GET"])
def list_people():
    people = directory_service.list_people(
        active_only=request.args.get("active") in ("1", "true", "yes"),
        search=request.args.get("search"),
    )
    return jsonify({"items": [p.to_dict() for p in people], "total": len(people)})


@directory_bp.route("/people", methods=["POST"])
def create_person():
    person = directory_service.create_person(json_body())
    return jsonify(person.to_dict()), 201


@directory_bp.route("/people/<int:person_id>", methods=["GET"])
def get_person(person_id):
    return jsonify(directory_service.get_person(person_id).to_dict())


@directory_bp.route("/people/<int:person_id>", methods=["PUT"])
def update_person(person_id):
    person = directory_service.update_person(person_id, json_body())
    return jsonify(person.to_dict())
