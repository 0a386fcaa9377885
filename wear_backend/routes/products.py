from decimal import Decimal

from flask import current_app, request
from flask_jwt_extended import jwt_required
from sqlalchemy import or_, select

from ..auth import get_optional_user, require_admin_user
from ..extensions import db
from ..helpers import (
    api_error,
    api_success,
    get_pagination_params,
    get_request_payload,
    normalize_name,
    parse_bool,
    parse_decimal,
    parse_id_list,
    parse_int,
    parse_json_list,
    parse_json_object,
    serialize_pagination,
    slugify,
)
from ..models import Category, OrderItem, Product, ProductCollection, find_by_id_or_slug
from ..serializers import serialize_product
from ..uploads import (
    build_upload_url,
    collect_image_files,
    remove_images_by_url,
    remove_product_image,
    save_product_images,
)
from ..validation import validation_error

DEFAULT_PRODUCT_PAGE_SIZE = 12
MAX_PRICE = Decimal("100000000")
MAX_SKU_LENGTH = 100
MAX_SLUG_LENGTH = 220
MAX_BARCODE_LENGTH = 100
MAX_IMAGE_URL_LENGTH = 500


def read_non_negative_int(payload, key, errors, label):
    value = parse_int(payload.get(key))
    if value is None or value < 0:
        errors.append({"field": key, "message": f"{label} must be a non-negative integer"})
        return None
    return value


def parse_size_stock(raw_value, errors):
    size_stock, error = parse_json_object(raw_value)
    if error:
        errors.append({"field": "sizeStock", "message": "sizeStock must be an object"})
        return None
    if size_stock is None:
        return None
    normalized = {}
    for size, stock in size_stock.items():
        parsed = parse_int(stock)
        if parsed is None or parsed < 0:
            errors.append(
                {"field": "sizeStock", "message": f"Stock for size {size} must be a non-negative integer"}
            )
            return None
        normalized[str(size).strip()] = parsed
    return normalized


def collect_product_fields(payload, product=None):
    """Validate a create / update body into Product attribute values.

    Missing keys are left out so that an update only touches what was sent.
    Returns ``(values, errors)``.
    """
    creating = product is None
    values = {}
    errors = []

    if "name" in payload or creating:
        name = normalize_name(payload.get("name"))
        if not (2 <= len(name) <= 200):
            errors.append({"field": "name", "message": "Product name must be between 2 and 200 characters"})
        values["name"] = name

    sku_raw = payload.get("SKU", payload.get("sku"))
    if sku_raw is not None or creating:
        sku = str(sku_raw or "").strip()
        if not sku:
            errors.append({"field": "SKU", "message": "SKU is required"})
        elif len(sku) > MAX_SKU_LENGTH:
            errors.append({"field": "SKU", "message": f"SKU must be at most {MAX_SKU_LENGTH} characters"})
        values["sku"] = sku

    if "price" in payload or creating:
        price = parse_decimal(payload.get("price"))
        if price is None or price < 0:
            errors.append({"field": "price", "message": "Price must be a non-negative number"})
        elif price >= MAX_PRICE:
            errors.append({"field": "price", "message": f"Price must be below {MAX_PRICE}"})
        values["price"] = price

    if "slug" in payload and str(payload.get("slug") or "").strip():
        values["slug"] = slugify(payload.get("slug"))
    elif creating and "name" in values:
        values["slug"] = slugify(values["name"])
    if len(values.get("slug") or "") > MAX_SLUG_LENGTH:
        errors.append({"field": "slug", "message": f"Slug must be at most {MAX_SLUG_LENGTH} characters"})

    if "description" in payload:
        values["description"] = str(payload.get("description") or "").strip() or None

    if "compareAtPrice" in payload:
        raw_compare = payload.get("compareAtPrice")
        if raw_compare in (None, ""):
            values["compare_at_price"] = None
        else:
            compare_at_price = parse_decimal(raw_compare)
            if compare_at_price is None or compare_at_price < 0:
                errors.append(
                    {"field": "compareAtPrice", "message": "Compare-at price must be a non-negative number"}
                )
            elif compare_at_price >= MAX_PRICE:
                errors.append(
                    {"field": "compareAtPrice", "message": f"Compare-at price must be below {MAX_PRICE}"}
                )
            values["compare_at_price"] = compare_at_price

    if "quantity" in payload:
        values["quantity"] = read_non_negative_int(payload, "quantity", errors, "Quantity")

    if "sizeStock" in payload:
        size_stock = parse_size_stock(payload.get("sizeStock"), errors)
        values["size_stock"] = size_stock
        if size_stock:
            values["quantity"] = sum(size_stock.values())

    if "barcode" in payload:
        values["barcode"] = str(payload.get("barcode") or "").strip() or None
        if len(values["barcode"] or "") > MAX_BARCODE_LENGTH:
            errors.append(
                {"field": "barcode", "message": f"Barcode must be at most {MAX_BARCODE_LENGTH} characters"}
            )

    if "weightGrams" in payload:
        if payload.get("weightGrams") in (None, ""):
            values["weight_grams"] = None
        else:
            values["weight_grams"] = read_non_negative_int(
                payload, "weightGrams", errors, "Weight"
            )

    if "mainThumbnailIndex" in payload:
        values["main_thumbnail_index"] = read_non_negative_int(
            payload, "mainThumbnailIndex", errors, "Main thumbnail index"
        )

    if "isActive" in payload:
        is_active = parse_bool(payload.get("isActive"))
        if is_active is None:
            errors.append({"field": "isActive", "message": "isActive must be a boolean"})
        values["is_active"] = is_active

    if "imageUrl" in payload:
        values["image_url"] = str(payload.get("imageUrl") or "").strip() or None
        if len(values["image_url"] or "") > MAX_IMAGE_URL_LENGTH:
            errors.append(
                {"field": "imageUrl", "message": f"Image URL must be at most {MAX_IMAGE_URL_LENGTH} characters"}
            )

    if "images" in payload:
        values["images"] = [
            str(url).strip() for url in parse_json_list(payload.get("images")) if str(url).strip()
        ]

    return values, errors


def find_conflicting_product(slug, sku, exclude_id=None):
    conditions = []
    if slug:
        conditions.append(Product.slug == slug)
    if sku:
        conditions.append(Product.sku == sku)
    if not conditions:
        return None
    query = select(Product).where(or_(*conditions))
    if exclude_id is not None:
        query = query.where(Product.id != exclude_id)
    return db.session.scalar(query.limit(1))


def resolve_categories(category_ids):
    if not category_ids:
        return []
    return list(db.session.scalars(select(Category).where(Category.id.in_(category_ids))))


def sync_primary_image(product):
    images = list(product.images or [])
    if not images:
        return
    index = product.main_thumbnail_index or 0
    if index >= len(images):
        index = 0
        product.main_thumbnail_index = 0
    product.image_url = images[index]


def register_product_routes(app):
    @app.route("/api/products", methods=["GET"])
    def list_products():
        page, per_page = get_pagination_params(DEFAULT_PRODUCT_PAGE_SIZE)
        query = select(Product)

        search = str(request.args.get("q") or "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Product.name.ilike(pattern),
                    Product.description.ilike(pattern),
                    Product.sku.ilike(pattern),
                )
            )

        active = parse_bool(request.args.get("active"))
        if active is not None:
            query = query.where(Product.is_active == active)

        category_id = parse_int(request.args.get("categoryId"))
        if category_id is not None:
            query = query.where(Product.categories.any(Category.id == category_id))

        collection_id = parse_int(request.args.get("collectionId"))
        if collection_id is not None:
            query = query.where(
                Product.collection_links.any(ProductCollection.collection_id == collection_id)
            )

        pagination = db.paginate(
            query.order_by(Product.created_at.desc(), Product.id.desc()),
            page=page,
            per_page=per_page,
            error_out=False,
        )
        return api_success(
            {
                "products": [serialize_product(product) for product in pagination.items],
                "pagination": serialize_pagination(pagination, "totalProducts"),
            }
        )

    @app.route("/api/products/<id_or_slug>", methods=["GET"])
    def get_product(id_or_slug: str):
        product = find_by_id_or_slug(Product, id_or_slug)
        if not product:
            return api_error("Product not found", 404)
        if not product.is_active:
            viewer = get_optional_user()
            if viewer is None or not viewer.is_admin:
                return api_error("Product not found", 404)
        return api_success({"product": serialize_product(product)})

    @app.route("/api/products", methods=["POST"])
    @jwt_required()
    def create_product():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        payload = get_request_payload()
        values, errors = collect_product_fields(payload)
        if errors:
            return validation_error(errors)

        if find_conflicting_product(values.get("slug"), values.get("sku")):
            return api_error("Product with slug or SKU already exists")

        saved_filenames, image_error = save_product_images(collect_image_files(request.files))
        if image_error:
            return api_error(image_error)

        product = Product(**values)
        product.images = list(values.get("images") or []) + [
            build_upload_url(filename) for filename in saved_filenames
        ]
        if not values.get("image_url"):
            sync_primary_image(product)

        raw_category_ids = payload.get("categoryIds")
        if raw_category_ids is not None:
            product.categories = resolve_categories(parse_id_list(raw_category_ids))

        db.session.add(product)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            remove_product_image(saved_filenames)
            raise

        current_app.logger.info("Created product %s (%s)", product.sku, product.id)
        return api_success({"product": serialize_product(product)}, "Product created", 201)

    @app.route("/api/products/<int:product_id>", methods=["PUT"])
    @jwt_required()
    def update_product(product_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        product = db.session.get(Product, product_id)
        if not product:
            return api_error("Product not found", 404)

        payload = get_request_payload()
        values, errors = collect_product_fields(payload, product)
        if errors:
            return validation_error(errors)

        if values.get("slug") and values["slug"] != product.slug:
            if find_conflicting_product(values["slug"], None, exclude_id=product.id):
                return api_error("Slug already in use")
        if values.get("sku") and values["sku"] != product.sku:
            if find_conflicting_product(None, values["sku"], exclude_id=product.id):
                return api_error("SKU already in use")

        saved_filenames, image_error = save_product_images(collect_image_files(request.files))
        if image_error:
            return api_error(image_error)

        for attribute, value in values.items():
            setattr(product, attribute, value)

        images = list(product.images or [])
        removed = []
        removal_list = [
            str(url).strip() for url in parse_json_list(payload.get("removeImages")) if url
        ]
        if removal_list:
            removed = [url for url in images if url in removal_list]
            images = [url for url in images if url not in removal_list]
        images.extend(build_upload_url(filename) for filename in saved_filenames)
        product.images = images
        if "image_url" not in values:
            if images:
                sync_primary_image(product)
            elif product.image_url in removed:
                product.image_url = None

        raw_category_ids = payload.get("categoryIds")
        if raw_category_ids is not None:
            product.categories = resolve_categories(parse_id_list(raw_category_ids))

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            remove_product_image(saved_filenames)
            raise

        remove_images_by_url(removed)
        return api_success({"product": serialize_product(product)}, "Product updated")

    @app.route("/api/products/<int:product_id>", methods=["DELETE"])
    @jwt_required()
    def delete_product(product_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        product = db.session.get(Product, product_id)
        if not product:
            return api_error("Product not found", 404)

        if db.session.scalar(select(OrderItem.id).where(OrderItem.product_id == product.id).limit(1)):
            return api_error("Cannot delete a product that is part of existing orders")

        stored_images = list(product.images or [])
        if product.image_url:
            stored_images.append(product.image_url)

        db.session.delete(product)
        db.session.commit()
        remove_images_by_url(set(stored_images))
        current_app.logger.info("Deleted product %s", product_id)
        return api_success(message="Product deleted")

    @app.route("/api/products/<int:product_id>/categories", methods=["PUT"])
    @jwt_required()
    def set_product_categories(product_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        product = db.session.get(Product, product_id)
        if not product:
            return api_error("Product not found", 404)

        payload = get_request_payload()
        category_ids = payload.get("categoryIds")
        if not isinstance(category_ids, list):
            return api_error("categoryIds must be an array")

        product.categories = resolve_categories(parse_id_list(category_ids))
        db.session.commit()
        return api_success({"product": serialize_product(product)})
