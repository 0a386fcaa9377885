from flask_jwt_extended import jwt_required
from sqlalchemy import delete, select

from ..auth import require_active_user
from ..extensions import db
from ..helpers import api_error, api_success, get_json_payload, isoformat
from ..models import Product, WishlistItem, find_by_id_or_slug
from ..serializers import serialize_wishlist_item


def find_wishlist_item(user_id, product_id):
    return db.session.scalar(
        select(WishlistItem).where(
            WishlistItem.user_id == user_id, WishlistItem.product_id == product_id
        )
    )


def register_wishlist_routes(app):
    @app.route("/api/wishlist", methods=["GET"])
    @jwt_required()
    def get_wishlist():
        user, error = require_active_user()
        if error:
            return error

        items = db.session.scalars(
            select(WishlistItem)
            .join(Product, Product.id == WishlistItem.product_id)
            .where(WishlistItem.user_id == user.id, Product.is_active.is_(True))
            .order_by(WishlistItem.added_at.desc(), WishlistItem.created_at.desc())
        ).all()
        return api_success([serialize_wishlist_item(item) for item in items], count=len(items))

    @app.route("/api/wishlist", methods=["POST"])
    @jwt_required()
    def add_to_wishlist():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        identifier = payload.get("productId") or payload.get("productSlug")
        if not identifier:
            return api_error("Provide productId or productSlug")

        product = find_by_id_or_slug(Product, identifier)
        if not product or not product.is_active:
            return api_error("Product not found or inactive", 404)

        if find_wishlist_item(user.id, product.id):
            return api_error("Product is already in your wishlist")

        item = WishlistItem(user_id=user.id, product_id=product.id)
        db.session.add(item)
        db.session.commit()
        return api_success(serialize_wishlist_item(item), "Product added to wishlist", 201)

    @app.route("/api/wishlist/<product_id_or_slug>", methods=["DELETE"])
    @jwt_required()
    def remove_from_wishlist(product_id_or_slug: str):
        user, error = require_active_user()
        if error:
            return error

        product = find_by_id_or_slug(Product, product_id_or_slug)
        if not product:
            return api_error("Product not found", 404)

        item = find_wishlist_item(user.id, product.id)
        if not item:
            return api_error("Product not found in wishlist", 404)

        db.session.delete(item)
        db.session.commit()
        return api_success(message="Product removed from wishlist")

    @app.route("/api/wishlist/check/<product_id_or_slug>", methods=["GET"])
    @jwt_required()
    def check_wishlist_status(product_id_or_slug: str):
        user, error = require_active_user()
        if error:
            return error

        product = find_by_id_or_slug(Product, product_id_or_slug)
        item = find_wishlist_item(user.id, product.id) if product else None
        return api_success(
            {
                "isInWishlist": item is not None,
                "addedAt": isoformat(item.added_at) if item else None,
            }
        )

    @app.route("/api/wishlist", methods=["DELETE"])
    @jwt_required()
    def clear_wishlist():
        user, error = require_active_user()
        if error:
            return error

        result = db.session.execute(delete(WishlistItem).where(WishlistItem.user_id == user.id))
        deleted_count = result.rowcount
        db.session.commit()
        return api_success(
            {"deletedCount": deleted_count},
            f"Cleared {deleted_count} items from wishlist",
        )
