from datetime import timedelta

from flask import current_app, request
from flask_jwt_extended import jwt_required
from sqlalchemy import func, or_, select

from ..auth import require_admin_user
from ..extensions import db
from ..helpers import (
    api_error,
    api_success,
    get_json_payload,
    get_pagination_params,
    parse_bool,
    parse_int,
    serialize_pagination,
    utcnow,
)
from ..models import ORDER_STATUSES, Address, Order, OrderItem, Product, User
from ..order_service import apply_status_change, place_order
from ..serializers import serialize_address, serialize_order, serialize_user
from ..validation import (
    merge_preferences,
    normalize_address_payload,
    validate_profile_fields,
    validation_error,
)

DEFAULT_USER_PAGE_SIZE = 10
DEFAULT_ADMIN_ORDER_PAGE_SIZE = 20
USER_FILTERS = {
    "admin": User.is_admin.is_(True),
    "verified": User.is_email_verified.is_(True),
    "unverified": User.is_email_verified.is_(False),
    "active": User.is_active.is_(True),
    "inactive": User.is_active.is_(False),
}


def apply_user_filter(query, filter_name):
    condition = USER_FILTERS.get(filter_name or "")
    return query.where(condition) if condition is not None else query


def paginated_users(query):
    page, per_page = get_pagination_params(DEFAULT_USER_PAGE_SIZE)
    filter_name = request.args.get("filter")
    pagination = db.paginate(
        apply_user_filter(query, filter_name).order_by(User.created_at.desc(), User.id.desc()),
        page=page,
        per_page=per_page,
        error_out=False,
    )
    return api_success(
        {
            "users": [serialize_user(user, include_addresses=True) for user in pagination.items],
            "pagination": serialize_pagination(pagination, "totalUsers"),
            "filter": filter_name if filter_name in USER_FILTERS else "all",
        }
    )


def clear_other_default_addresses(user_id, keep_id=None):
    query = select(Address).where(Address.user_id == user_id, Address.is_default.is_(True))
    if keep_id is not None:
        query = query.where(Address.id != keep_id)
    for address in db.session.scalars(query):
        address.is_default = False


def build_dashboard_stats():
    thirty_days_ago = utcnow() - timedelta(days=30)

    def count(query):
        return db.session.scalar(query) or 0

    users_by_country = db.session.execute(
        select(Address.country, func.count(func.distinct(Address.user_id)).label("user_count"))
        .group_by(Address.country)
        .order_by(func.count(func.distinct(Address.user_id)).desc(), Address.country)
        .limit(5)
    )
    orders_by_status = db.session.execute(
        select(Order.status, func.count(Order.id))
        .group_by(Order.status)
        .order_by(func.count(Order.id).desc(), Order.status)
    )
    top_products = db.session.execute(
        select(
            Product.id,
            Product.name,
            Product.price,
            func.count(OrderItem.id).label("order_count"),
            func.sum(OrderItem.quantity).label("total_quantity"),
        )
        .select_from(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .group_by(Product.id, Product.name, Product.price)
        .order_by(func.count(OrderItem.id).desc(), Product.id)
        .limit(5)
    )

    return {
        "totalUsers": count(select(func.count(User.id))),
        "activeUsers": count(select(func.count(User.id)).where(User.is_active.is_(True))),
        "verifiedUsers": count(
            select(func.count(User.id)).where(User.is_email_verified.is_(True))
        ),
        "usersWithAddresses": count(select(func.count(func.distinct(Address.user_id)))),
        "recentUsers": count(
            select(func.count(User.id)).where(User.created_at >= thirty_days_ago)
        ),
        "usersByCountry": [
            {"country": country, "userCount": user_count}
            for country, user_count in users_by_country
        ],
        "totalProducts": count(select(func.count(Product.id))),
        "activeProducts": count(select(func.count(Product.id)).where(Product.is_active.is_(True))),
        "totalOrders": count(select(func.count(Order.id))),
        "ordersByStatus": [
            {"status": status, "count": total} for status, total in orders_by_status
        ],
        "revenueLast30Days": int(
            count(
                select(func.sum(Order.total_amount_cents)).where(
                    Order.created_at >= thirty_days_ago,
                    Order.status.in_(("paid", "delivered")),
                )
            )
        ),
        "topProducts": [
            {
                "id": row.id,
                "name": row.name,
                "price": float(row.price),
                "orderCount": row.order_count,
                "totalQuantity": int(row.total_quantity or 0),
            }
            for row in top_products
        ],
    }


def register_admin_routes(app):
    # --- Users ---
    @app.route("/api/admin/users", methods=["GET"])
    @jwt_required()
    def list_users():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error
        return paginated_users(select(User))

    @app.route("/api/admin/users/search", methods=["GET"])
    @jwt_required()
    def search_users():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        search = str(request.args.get("q") or "").strip()
        if not search:
            return api_error("Search query is required")

        pattern = f"%{search}%"
        return paginated_users(
            select(User).where(
                or_(
                    User.email.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                    User.phone.ilike(pattern),
                )
            )
        )

    @app.route("/api/admin/admins", methods=["GET"])
    @jwt_required()
    def list_admins():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        admins = db.session.scalars(
            select(User).where(User.is_admin.is_(True)).order_by(User.created_at.desc())
        ).all()
        return api_success(
            {"admins": [serialize_user(user) for user in admins], "count": len(admins)}
        )

    @app.route("/api/admin/users/<int:user_id>", methods=["GET"])
    @jwt_required()
    def get_user(user_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        user = db.session.get(User, user_id)
        if not user:
            return api_error("User not found", 404)
        return api_success({"user": serialize_user(user, include_addresses=True)})

    @app.route("/api/admin/users/<int:user_id>", methods=["PUT"])
    @jwt_required()
    def update_user(user_id: int):
        admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        user = db.session.get(User, user_id)
        if not user:
            return api_error("User not found", 404)

        payload = get_json_payload()
        errors = []
        updates = validate_profile_fields(payload, errors)
        for wire_key, attribute in (
            ("isActive", "is_active"),
            ("isEmailVerified", "is_email_verified"),
            ("isAdmin", "is_admin"),
        ):
            if wire_key in payload:
                flag = parse_bool(payload.get(wire_key))
                if flag is None:
                    errors.append({"field": wire_key, "message": f"{wire_key} must be a boolean"})
                updates[attribute] = flag
        if errors:
            return validation_error(errors)

        if user.id == admin.id:
            if updates.get("is_admin") is False:
                return api_error("You cannot remove your own admin privileges")
            if updates.get("is_active") is False:
                return api_error("You cannot deactivate your own account")

        for attribute, value in updates.items():
            if attribute == "preferences":
                user.preferences = merge_preferences(user.preferences, value)
            else:
                setattr(user, attribute, value)
        db.session.commit()
        current_app.logger.info("Admin %s updated user %s", admin.email, user.email)
        return api_success(
            {"user": serialize_user(user, include_addresses=True)}, "User updated successfully"
        )

    @app.route("/api/admin/users/<int:user_id>/admin", methods=["PUT"])
    @jwt_required()
    def set_user_admin(user_id: int):
        admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        payload = get_json_payload()
        is_admin = payload.get("isAdmin")
        if not isinstance(is_admin, bool):
            return api_error("isAdmin must be a boolean value")

        user = db.session.get(User, user_id)
        if not user:
            return api_error("User not found", 404)
        if user.id == admin.id and not is_admin:
            return api_error("You cannot remove your own admin privileges")

        user.is_admin = is_admin
        db.session.commit()
        current_app.logger.info(
            "Admin %s set admin=%s for %s", admin.email, is_admin, user.email
        )
        return api_success(
            {"user": serialize_user(user)},
            f"Admin privileges {'granted' if is_admin else 'revoked'} successfully",
        )

    @app.route("/api/admin/users/<int:user_id>", methods=["DELETE"])
    @jwt_required()
    def delete_user(user_id: int):
        admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        user = db.session.get(User, user_id)
        if not user:
            return api_error("User not found", 404)
        if user.id == admin.id:
            return api_error("You cannot delete your own account")

        db.session.delete(user)
        db.session.commit()
        current_app.logger.info("Admin %s deleted user %s", admin.email, user_id)
        return api_success(message="User deleted successfully")

    # --- Addresses ---
    @app.route("/api/admin/users/<int:user_id>/addresses", methods=["GET"])
    @jwt_required()
    def get_user_addresses(user_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        user = db.session.get(User, user_id)
        if not user:
            return api_error("User not found", 404)
        return api_success({"addresses": [serialize_address(address) for address in user.addresses]})

    @app.route("/api/admin/users/<int:user_id>/addresses", methods=["POST"])
    @jwt_required()
    def add_user_address(user_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        user = db.session.get(User, user_id)
        if not user:
            return api_error("User not found", 404)

        values, errors = normalize_address_payload(get_json_payload())
        if errors:
            return validation_error(errors)

        if values.get("is_default"):
            clear_other_default_addresses(user.id)
        address = Address(user_id=user.id, **values)
        db.session.add(address)
        db.session.commit()
        return api_success(
            {"address": serialize_address(address)}, "Address added successfully", 201
        )

    @app.route("/api/admin/users/<int:user_id>/addresses/<int:address_id>", methods=["PUT"])
    @jwt_required()
    def update_user_address(user_id: int, address_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        address = db.session.get(Address, address_id)
        if not address or address.user_id != user_id:
            return api_error("Address not found", 404)

        values, errors = normalize_address_payload(get_json_payload(), partial=True)
        if errors:
            return validation_error(errors)

        if values.get("is_default"):
            clear_other_default_addresses(user_id, keep_id=address.id)
        for attribute, value in values.items():
            setattr(address, attribute, value)
        db.session.commit()
        return api_success({"address": serialize_address(address)}, "Address updated successfully")

    @app.route("/api/admin/users/<int:user_id>/addresses/<int:address_id>", methods=["DELETE"])
    @jwt_required()
    def delete_user_address(user_id: int, address_id: int):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        address = db.session.get(Address, address_id)
        if not address or address.user_id != user_id:
            return api_error("Address not found", 404)

        db.session.delete(address)
        db.session.commit()
        return api_success(message="Address deleted successfully")

    # --- Dashboard ---
    @app.route("/api/admin/dashboard", methods=["GET"])
    @jwt_required()
    def get_dashboard_stats():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error
        return api_success(build_dashboard_stats())

    # --- Orders ---
    @app.route("/api/admin/orders", methods=["GET"])
    @jwt_required()
    def list_orders():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        page, per_page = get_pagination_params(DEFAULT_ADMIN_ORDER_PAGE_SIZE)
        query = select(Order)

        status = str(request.args.get("status") or "").strip()
        if status:
            query = query.where(Order.status == status)

        search = str(request.args.get("q") or "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(Order.customer_email.ilike(pattern), Order.customer_name.ilike(pattern))
            )

        pagination = db.paginate(
            query.order_by(Order.created_at.desc()),
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

    @app.route("/api/admin/orders/<order_id>", methods=["GET"])
    @jwt_required()
    def get_order(order_id: str):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        order = db.session.get(Order, order_id)
        if not order:
            return api_error("Order not found", 404)
        return api_success({"order": serialize_order(order)})

    @app.route("/api/admin/orders", methods=["POST"])
    @jwt_required()
    def create_order():
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        payload = get_json_payload()
        user_id = parse_int(payload.get("userId"))
        if user_id is None:
            return api_error("userId and at least one item are required")

        customer = db.session.get(User, user_id)
        if not customer:
            return api_error("User not found", 404)

        order, order_error = place_order(
            payload, user=customer, allow_price_override=True, clear_cart=False
        )
        if order_error:
            return order_error
        return api_success({"order": serialize_order(order)}, "Order created", 201)

    @app.route("/api/admin/orders/<order_id>/status", methods=["PUT"])
    @jwt_required()
    def update_order_status(order_id: str):
        admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        status = str(get_json_payload().get("status") or "").strip()
        if status not in ORDER_STATUSES:
            return api_error("Invalid status")

        order = db.session.get(Order, order_id)
        if not order:
            return api_error("Order not found", 404)

        previous_status = apply_status_change(order, status)
        db.session.commit()
        current_app.logger.info(
            "Admin %s moved order %s from %s to %s", admin.email, order.id, previous_status, status
        )
        return api_success({"order": serialize_order(order)}, "Order status updated")

    @app.route("/api/admin/orders/<order_id>", methods=["DELETE"])
    @jwt_required()
    def delete_order(order_id: str):
        _admin, permission_error = require_admin_user()
        if permission_error:
            return permission_error

        order = db.session.get(Order, order_id)
        if not order:
            return api_error("Order not found", 404)

        db.session.delete(order)
        db.session.commit()
        return api_success(message="Order deleted")
