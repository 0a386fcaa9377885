from flask import current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import func, or_, select

from ..auth import require_admin_user
from ..extensions import db
from ..helpers import (
    api_error,
    api_success,
    get_json_payload,
    get_pagination_params,
    normalize_name,
    parse_bool,
    serialize_pagination,
    slugify,
)
from ..models import Category, Product, find_by_id_or_slug, product_categories
from ..serializers import serialize_category, serialize_product

DEFAULT_CATEGORY_PRODUCTS_PAGE_SIZE = 12


def build_category_product_counts():
    rows = db.session.execute(
        select(product_categories.c.category_id, func.count(product_categories.c.product_id))
        .join(Product, Product.id == product_categories.c.product_id)
        .where(Product.is_active.is_(True))
        .group_by(product_categories.c.category_id)
    )
    return {category_id: count for category_id, count in rows}


def collect_category_fields(payload, category=None):
    creating = category is None
    values = {}
    if "name" in payload or creating:
        name = normalize_name(payload.get("name"))
        if not (2 <= len(name) <= 120):
            return None, "Category name must be between 2 and 120 characters"
        values["name"] = name
    if str(payload.get("slug") or "").strip():
        values["slug"] = slugify(payload.get("slug"))
    elif creating:
        values["slug"] = slugify(values["name"])
    if "description" in payload:
        values["description"] = str(payload.get("description") or "").strip() or None
    if "isActive" in payload:
        is_active = parse_bool(payload.get("isActive"))
        if is_active is None:
            return None, "isActive must be a boolean"
        values["is_active"] = is_active
    return values, None


def find_conflicting_category(name, slug, exclude_id=None):
    conditions = []
    if name:
        conditions.append(func.lower(Category.name) == name.lower())
    if slug:
        conditions.append(Category.slug == slug)
    if not conditions:
        return None
    query = select(Category).where(or_(*conditions))
    if exclude_id is not None:
        query = query.where(Category.id != exclude_id)
    return db.session.scalar(query.limit(1))


def register_category_routes(app):
    @app.route("/api/categories", methods=["GET"])
    def list_categories():
        counts = build_category_product_counts()
        categories = db.session.scalars(
            select(Category).where(Category.is_active.is_(True)).order_by(Category.name)
        )
        return api_success(
            {
                "categories": [
                    serialize_category(category, counts.get(category.id, 0))
                    for category in categories
                ]
            }
        )

    @app.route("/api/categories/<id_or_slug>", methods=["GET"])
    def get_category(id_or_slug: str):
        category = find_by_id_or_slug(Category, id_or_slug)
        if not category:
            return api_error("Category not found", 404)
        counts = build_category_product_counts()
        return api_success({"category": serialize_category(category, counts.get(category.id, 0))})

    @app.route("/api/categories/<id_or_slug>/products", methods=["GET"])
    def get_category_products(id_or_slug: str):
        category = find_by_id_or_slug(Category, id_or_slug)
        if not category:
            return api_error("Category not found", 404)

        page, per_page = get_pagination_params(DEFAULT_CATEGORY_PRODUCTS_PAGE_SIZE)
        pagination = db.paginate(
            select(Product)
            .where(Product.is_active.is_(True))
            .where(Product.categories.any(Category.id == category.id))
            .order_by(Product.created_at.desc(), Product.id.desc()),
            page=page,
            per_page=per_page,
            error_out=False,
        )
        return api_success(
            {
                "category": serialize_category(category),
                "products": [serialize_product(product) for product in pagination.items],
                "pagination": serialize_pagination(pagination, "totalProducts"),
            }
        )

    @app.route("/api/categories", methods=["POST"])
    @jwt_required()
    def create_category():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        values, error = collect_category_fields(get_json_payload())
        if error:
            return api_error(error)
        if find_conflicting_category(values["name"], values["slug"]):
            return api_error("Category with name or slug already exists")

        category = Category(**values)
        db.session.add(category)
        db.session.commit()
        current_app.logger.info("Created category %s", category.slug)
        return api_success({"category": serialize_category(category, 0)}, "Category created", 201)

    @app.route("/api/categories/<int:category_id>", methods=["PUT"])
    @jwt_required()
    def update_category(category_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        category = db.session.get(Category, category_id)
        if not category:
            return api_error("Category not found", 404)

        values, error = collect_category_fields(get_json_payload(), category)
        if error:
            return api_error(error)
        if find_conflicting_category(values.get("name"), values.get("slug"), exclude_id=category.id):
            return api_error("Category with name or slug already exists")

        for attribute, value in values.items():
            setattr(category, attribute, value)
        db.session.commit()
        return api_success({"category": serialize_category(category)}, "Category updated")

    @app.route("/api/categories/<int:category_id>", methods=["DELETE"])
    @jwt_required()
    def delete_category(category_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        category = db.session.get(Category, category_id)
        if not category:
            return api_error("Category not found", 404)

        db.session.delete(category)
        db.session.commit()
        current_app.logger.info("Deleted category %s", category_id)
        return api_success(message="Category deleted")
