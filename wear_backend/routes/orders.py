from flask_jwt_extended import jwt_required
from sqlalchemy import select

from ..auth import require_active_user
from ..extensions import db
from ..helpers import api_error, api_success, get_json_payload, get_pagination_params, serialize_pagination
from ..models import Order
from ..order_service import place_order
from ..serializers import serialize_order

DEFAULT_ORDER_PAGE_SIZE = 10


def register_order_routes(app):
    @app.route("/api/orders", methods=["POST"])
    @app.route("/api/products/checkout/cod", methods=["POST"])
    @jwt_required()
    def create_user_order():
        user, error = require_active_user()
        if error:
            return error

        order, order_error = place_order(get_json_payload(), user=user)
        if order_error:
            return order_error
        return api_success({"order": serialize_order(order)}, "Order placed successfully", 201)

    @app.route("/api/orders/guest", methods=["POST"])
    @app.route("/api/products/checkout/guest", methods=["POST"])
    def create_guest_order():
        order, order_error = place_order(get_json_payload(), user=None)
        if order_error:
            return order_error
        return api_success({"order": serialize_order(order)}, "Order placed successfully", 201)

    @app.route("/api/orders", methods=["GET"])
    @jwt_required()
    def list_user_orders():
        user, error = require_active_user()
        if error:
            return error

        page, per_page = get_pagination_params(DEFAULT_ORDER_PAGE_SIZE)
        pagination = db.paginate(
            select(Order)
            .where(Order.user_id == user.id)
            .order_by(Order.created_at.desc()),
            page=page,
            per_page=per_page,
            error_out=False,
        )
        return api_success(
            {
                "orders": [serialize_order(order) for order in pagination.items],
                "pagination": serialize_pagination(pagination, "totalOrders"),
            }
        )

    @app.route("/api/orders/<order_id>", methods=["GET"])
    @jwt_required()
    def get_user_order(order_id: str):
        user, error = require_active_user()
        if error:
            return error

        order = db.session.get(Order, order_id)
        if not order or order.user_id != user.id:
            return api_error("Order not found", 404)
        return api_success({"order": serialize_order(order)})
