from flask import request
from flask_jwt_extended import jwt_required
from sqlalchemy import delete, select

from ..auth import require_active_user
from ..extensions import db
from ..helpers import api_error, api_success, get_json_payload, parse_int
from ..models import CartItem, Product
from ..serializers import serialize_cart

MAX_SIZE_LENGTH = 20


def normalize_size(value):
    size = str(value or "").strip()
    return size or None


def find_cart_item(user_id, product_id, size):
    query = select(CartItem).where(
        CartItem.user_id == user_id, CartItem.product_id == product_id
    )
    if size is None:
        query = query.where(CartItem.size.is_(None))
    else:
        query = query.where(CartItem.size == size)
    return db.session.scalar(query)


def merge_cart_line(user_id, product_id, quantity, size):
    """Add ``quantity`` to the (product, size) line, creating it when missing."""
    cart_item = find_cart_item(user_id, product_id, size)
    if cart_item:
        cart_item.quantity += quantity
    else:
        cart_item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity, size=size)
        db.session.add(cart_item)
    db.session.flush()
    return cart_item


def cart_response(user_id, message=None):
    cart_items = db.session.scalars(
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at, CartItem.id)
    )
    return api_success(serialize_cart(cart_items), message)


def register_cart_routes(app):
    @app.route("/api/cart", methods=["GET"])
    @jwt_required()
    def get_cart():
        user, error = require_active_user()
        if error:
            return error
        return cart_response(user.id)

    @app.route("/api/cart", methods=["POST"])
    @app.route("/api/cart/add", methods=["POST"])
    @jwt_required()
    def add_to_cart():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        product_id = parse_int(payload.get("productId"))
        if product_id is None:
            return api_error("Product ID is required")

        quantity = parse_int(payload.get("quantity", 1))
        if quantity is None or quantity < 1:
            return api_error("Quantity must be at least 1")

        size = normalize_size(payload.get("size"))
        if size and len(size) > MAX_SIZE_LENGTH:
            return api_error(f"Size must be at most {MAX_SIZE_LENGTH} characters")

        if not db.session.get(Product, product_id):
            return api_error("Product not found", 404)

        merge_cart_line(user.id, product_id, quantity, size)
        db.session.commit()
        return cart_response(user.id, "Item added to cart")

    @app.route("/api/cart", methods=["PUT"])
    @app.route("/api/cart/update", methods=["PUT"])
    @jwt_required()
    def update_cart_item():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        product_id = parse_int(payload.get("productId"))
        quantity = parse_int(payload.get("quantity"))
        if product_id is None or quantity is None:
            return api_error("Product ID and quantity are required")
        if quantity < 0:
            return api_error("Quantity cannot be negative")

        cart_item = find_cart_item(user.id, product_id, normalize_size(payload.get("size")))
        if not cart_item:
            return api_error("Item not found in cart", 404)

        if quantity == 0:
            db.session.delete(cart_item)
        else:
            cart_item.quantity = quantity
        db.session.commit()
        return cart_response(user.id, "Cart updated")

    @app.route("/api/cart/<int:product_id>", methods=["DELETE"])
    @jwt_required()
    def remove_from_cart(product_id: int):
        user, error = require_active_user()
        if error:
            return error

        cart_item = find_cart_item(user.id, product_id, normalize_size(request.args.get("size")))
        if not cart_item:
            return api_error("Item not found in cart", 404)

        db.session.delete(cart_item)
        db.session.commit()
        return cart_response(user.id, "Item removed from cart")

    @app.route("/api/cart", methods=["DELETE"])
    @app.route("/api/cart/clear", methods=["DELETE"])
    @jwt_required()
    def clear_cart():
        user, error = require_active_user()
        if error:
            return error

        db.session.execute(delete(CartItem).where(CartItem.user_id == user.id))
        db.session.commit()
        return cart_response(user.id, "Cart cleared")

    @app.route("/api/cart/sync", methods=["POST"])
    @jwt_required()
    def sync_cart():
        user, error = require_active_user()
        if error:
            return error

        payload = get_json_payload()
        guest_items = payload.get("guestCartItems")
        if not isinstance(guest_items, list):
            return api_error("Guest cart items must be an array")

        for guest_item in guest_items:
            if not isinstance(guest_item, dict):
                continue
            product_id = parse_int(guest_item.get("productId", guest_item.get("id")))
            quantity = parse_int(guest_item.get("quantity"))
            size = normalize_size(guest_item.get("size"))
            if product_id is None or quantity is None or quantity < 1:
                continue
            if size and len(size) > MAX_SIZE_LENGTH:
                continue
            if not db.session.get(Product, product_id):
                continue
            merge_cart_line(user.id, product_id, quantity, size)

        db.session.commit()
        return cart_response(user.id, "Cart synchronized")
