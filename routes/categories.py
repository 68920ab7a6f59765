"""
Service category routes. Reads are public; writes are admin-only.
"""

from flask import Blueprint, request, jsonify

from auth_routes import require_role
import catalog
from models import Role

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.route("", methods=["GET"])
def list_categories():
    """List categories. Optional ?q= keyword matches name or description."""
    keyword = request.args.get("q")
    categories = catalog.search_categories(keyword) if keyword else catalog.list_categories()
    return jsonify({"success": True, "categories": [c.to_dict() for c in categories]}), 200


@categories_bp.route("/<category_id>", methods=["GET"])
def get_category(category_id):
    return jsonify({"success": True, "category": catalog.get_category(category_id).to_dict()}), 200


@categories_bp.route("", methods=["POST"])
@require_role(Role.ADMIN)
def create_category(user_id):
    """Body JSON: name, base_price, icon?, description?"""
    data = request.get_json(silent=True) or {}
    if data.get("base_price") is None:
        return jsonify({"error": "base_price is required"}), 400
    category = catalog.create_category(
        data.get("name"),
        data.get("base_price"),
        icon=data.get("icon"),
        description=data.get("description"),
    )
    return jsonify({"success": True, "category": category.to_dict()}), 201


@categories_bp.route("/<category_id>", methods=["PUT"])
@require_role(Role.ADMIN)
def update_category(user_id, category_id):
    data = request.get_json(silent=True) or {}
    category = catalog.update_category(category_id, data)
    return jsonify({"success": True, "category": category.to_dict()}), 200


@categories_bp.route("/<category_id>", methods=["DELETE"])
@require_role(Role.ADMIN)
def delete_category(user_id, category_id):
    catalog.delete_category(category_id)
    return jsonify({"success": True}), 200
