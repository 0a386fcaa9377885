from flask import request
from flask_jwt_extended import jwt_required
from sqlalchemy import select

from ..auth import require_admin_user
from ..extensions import db
from ..helpers import (
    api_error,
    api_success,
    get_json_payload,
    get_pagination_params,
    normalize_name,
    parse_bool,
    parse_id_list,
    parse_int,
    parse_json_object,
    serialize_pagination,
    slugify,
)
from ..models import COLLECTION_TYPES, Collection, Product, ProductCollection, find_by_id_or_slug
from ..serializers import serialize_collection

DEFAULT_COLLECTION_PAGE_SIZE = 20


def collect_collection_fields(payload, collection=None):
    creating = collection is None
    values = {}
    if "name" in payload or creating:
        name = normalize_name(payload.get("name"))
        if not (2 <= len(name) <= 200):
            return None, "Collection name must be between 2 and 200 characters"
        values["name"] = name
    if str(payload.get("slug") or "").strip():
        values["slug"] = slugify(payload.get("slug"))
    elif creating:
        values["slug"] = slugify(values["name"])
    if "description" in payload:
        values["description"] = str(payload.get("description") or "").strip() or None
    if "imageUrl" in payload:
        values["image_url"] = str(payload.get("imageUrl") or "").strip() or None
    if "isActive" in payload:
        is_active = parse_bool(payload.get("isActive"))
        if is_active is None:
            return None, "isActive must be a boolean"
        values["is_active"] = is_active
    if "sortOrder" in payload:
        sort_order = parse_int(payload.get("sortOrder"))
        if sort_order is None:
            return None, "sortOrder must be an integer"
        values["sort_order"] = sort_order
    if payload.get("collectionType") is not None:
        collection_type = str(payload.get("collectionType")).strip().lower()
        if collection_type not in COLLECTION_TYPES:
            return None, "Invalid collectionType"
        values["collection_type"] = collection_type
    if "conditions" in payload:
        conditions, error = parse_json_object(payload.get("conditions"))
        if error:
            return None, "conditions must be a JSON object"
        values["conditions"] = conditions
    return values, None


def replace_collection_products(collection, product_ids):
    products = {
        product.id: product
        for product in db.session.scalars(select(Product).where(Product.id.in_(product_ids)))
    } if product_ids else {}
    collection.product_links.clear()
    db.session.flush()
    for position, product_id in enumerate(product_ids):
        product = products.get(product_id)
        if product is not None:
            collection.product_links.append(ProductCollection(product=product, position=position))


def slug_taken(slug, exclude_id=None):
    query = select(Collection.id).where(Collection.slug == slug)
    if exclude_id is not None:
        query = query.where(Collection.id != exclude_id)
    return db.session.scalar(query.limit(1)) is not None


def register_collection_routes(app):
    @app.route("/api/collections", methods=["GET"])
    def list_collections():
        page, per_page = get_pagination_params(DEFAULT_COLLECTION_PAGE_SIZE)
        query = select(Collection)
        active = parse_bool(request.args.get("active"))
        if active is not None:
            query = query.where(Collection.is_active == active)

        pagination = db.paginate(
            query.order_by(Collection.sort_order, Collection.name),
            page=page,
            per_page=per_page,
            error_out=False,
        )
        return api_success(
            {
                "collections": [serialize_collection(item) for item in pagination.items],
                "pagination": serialize_pagination(pagination, "totalCollections"),
            }
        )

    @app.route("/api/collections/<id_or_slug>", methods=["GET"])
    def get_collection(id_or_slug: str):
        collection = find_by_id_or_slug(Collection, id_or_slug)
        if not collection:
            return api_error("Collection not found", 404)
        return api_success({"collection": serialize_collection(collection)})

    @app.route("/api/collections", methods=["POST"])
    @jwt_required()
    def create_collection():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        payload = get_json_payload()
        values, error = collect_collection_fields(payload)
        if error:
            return api_error(error)
        if slug_taken(values["slug"]):
            return api_error("Collection with this slug already exists")

        collection = Collection(**values)
        db.session.add(collection)
        if "productIds" in payload:
            replace_collection_products(collection, parse_id_list(payload.get("productIds")))
        db.session.commit()
        return api_success({"collection": serialize_collection(collection)}, "Collection created", 201)

    @app.route("/api/collections/<int:collection_id>", methods=["PUT"])
    @jwt_required()
    def update_collection(collection_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        collection = db.session.get(Collection, collection_id)
        if not collection:
            return api_error("Collection not found", 404)

        payload = get_json_payload()
        values, error = collect_collection_fields(payload, collection)
        if error:
            return api_error(error)
        if values.get("slug") and values["slug"] != collection.slug:
            if slug_taken(values["slug"], exclude_id=collection.id):
                return api_error("Slug already in use")

        for attribute, value in values.items():
            setattr(collection, attribute, value)
        if "productIds" in payload:
            replace_collection_products(collection, parse_id_list(payload.get("productIds")))
        db.session.commit()
        return api_success({"collection": serialize_collection(collection)}, "Collection updated")

    @app.route("/api/collections/<int:collection_id>", methods=["DELETE"])
    @jwt_required()
    def delete_collection(collection_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        collection = db.session.get(Collection, collection_id)
        if not collection:
            return api_error("Collection not found", 404)

        db.session.delete(collection)
        db.session.commit()
        return api_success(message="Collection deleted successfully")

    @app.route("/api/collections/<int:collection_id>/products/<int:product_id>", methods=["POST"])
    @jwt_required()
    def add_product_to_collection(collection_id: int, product_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        collection = db.session.get(Collection, collection_id)
        if not collection:
            return api_error("Collection not found", 404)
        product = db.session.get(Product, product_id)
        if not product:
            return api_error("Product not found", 404)

        payload = get_json_payload()
        position = parse_int(payload.get("position"))
        if position is None:
            position = 0

        link = db.session.get(ProductCollection, (product.id, collection.id))
        if link:
            link.position = position
        else:
            db.session.add(
                ProductCollection(product=product, collection=collection, position=position)
            )
        db.session.commit()
        return api_success(message="Product added to collection")

    @app.route("/api/collections/<int:collection_id>/products/<int:product_id>", methods=["DELETE"])
    @jwt_required()
    def remove_product_from_collection(collection_id: int, product_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        collection = db.session.get(Collection, collection_id)
        if not collection:
            return api_error("Collection not found", 404)
        product = db.session.get(Product, product_id)
        if not product:
            return api_error("Product not found", 404)

        link = db.session.get(ProductCollection, (product.id, collection.id))
        if link:
            db.session.delete(link)
            db.session.commit()
        return api_success(message="Product removed from collection")
