import re
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import delete

from .extensions import db
from .helpers import api_error, normalize_email, parse_int, to_cents
from .mailer import send_order_confirmation_email
from .models import STOCK_CONSUMING_STATUSES, CartItem, Order, OrderItem, Product

CURRENCY_REGEX = re.compile(r"^[A-Z]{3}$")
MAX_NOTES_LENGTH = 500
MAX_SIZE_LENGTH = 20
MAX_NAME_LENGTH = 50
MAX_EMAIL_LENGTH = 255
MAX_PAYMENT_METHOD_LENGTH = 50


def normalize_order_items(raw_items, allow_price_override: bool = False):
    """Validate the requested lines against the catalogue.

    Returns ``(lines, None)`` where each line carries the product, quantity, size
    and unit price in cents, or ``(None, error_response)``.
    """
    if not isinstance(raw_items, list) or not raw_items:
        return None, api_error("At least one item is required")

    lines: List[Dict] = []
    requested: Dict = {}
    for entry in raw_items:
        if not isinstance(entry, dict):
            return None, api_error("Each item requires productId and quantity")
        product_id = parse_int(entry.get("productId", entry.get("product_id")))
        quantity = parse_int(entry.get("quantity"))
        if product_id is None or quantity is None or quantity < 1:
            return None, api_error("Each item requires productId and quantity")

        product = db.session.get(Product, product_id)
        if not product:
            return None, api_error(f"Product {product_id} not found")

        size = str(entry.get("size") or "").strip() or None
        if size and len(size) > MAX_SIZE_LENGTH:
            return None, api_error(f"Size must be at most {MAX_SIZE_LENGTH} characters")
        unit_price_cents = to_cents(product.price)
        if allow_price_override and entry.get("unitPriceCents") is not None:
            override = parse_int(entry.get("unitPriceCents"))
            if override is None or override < 0:
                return None, api_error("unitPriceCents must be a non-negative integer")
            unit_price_cents = override

        key = (product.id, size if _tracks_size(product, size) else None)
        requested[key] = requested.get(key, 0) + quantity
        available = product.available_stock(size)
        if requested[key] > available:
            return None, api_error(
                f"Insufficient stock for {product.name}. Only {available} items available, "
                f"but {requested[key]} requested."
            )

        lines.append(
            {
                "product": product,
                "quantity": quantity,
                "size": size,
                "unit_price_cents": unit_price_cents,
            }
        )
    return lines, None


def _tracks_size(product: Product, size: Optional[str]) -> bool:
    return bool(size) and isinstance(product.size_stock, dict) and size in product.size_stock


def build_customer_info(user=None, billing_info: Optional[Dict] = None) -> Dict:
    if user is not None:
        return {
            "email": user.email,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "phone": user.phone or None,
        }
    billing_info = billing_info or {}
    return {
        "email": normalize_email(billing_info.get("email")),
        "firstName": str(billing_info.get("firstName") or "").strip(),
        "lastName": str(billing_info.get("lastName") or "").strip(),
        "phone": billing_info.get("phone") or None,
    }


def place_order(payload: Dict, user=None, allow_price_override: bool = False, clear_cart: bool = True):
    """Create an order and its items in one transaction.

    ``user`` is the registered customer; ``None`` places a guest order, which
    requires billing details. Returns ``(order, None)`` or ``(None, error_response)``.
    """
    billing_info = payload.get("billingInfo")
    if billing_info is not None and not isinstance(billing_info, dict):
        return None, api_error("billingInfo must be an object")
    shipping_address = payload.get("shippingAddress")
    if shipping_address is not None and not isinstance(shipping_address, dict):
        return None, api_error("shippingAddress must be an object")

    if user is None and not (
        billing_info
        and billing_info.get("email")
        and billing_info.get("firstName")
        and billing_info.get("lastName")
    ):
        return None, api_error(
            "Billing information (email, firstName, lastName) is required for guest orders"
        )
    if user is None:
        for key in ("firstName", "lastName"):
            if len(str(billing_info.get(key)).strip()) > MAX_NAME_LENGTH:
                return None, api_error(f"{key} must be at most {MAX_NAME_LENGTH} characters")
        if len(normalize_email(billing_info.get("email"))) > MAX_EMAIL_LENGTH:
            return None, api_error(f"email must be at most {MAX_EMAIL_LENGTH} characters")

    payment_method = str(payload.get("paymentMethod") or "").strip() or None
    if payment_method and len(payment_method) > MAX_PAYMENT_METHOD_LENGTH:
        return None, api_error(
            f"paymentMethod must be at most {MAX_PAYMENT_METHOD_LENGTH} characters"
        )

    shipping_cost_cents = parse_int(payload.get("shippingCostCents", 0) or 0)
    if shipping_cost_cents is None or shipping_cost_cents < 0:
        return None, api_error("shippingCostCents must be a non-negative integer")

    currency = str(payload.get("currency") or "USD").strip().upper()
    if not CURRENCY_REGEX.match(currency):
        return None, api_error("currency must be a 3-letter code")

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes)
        if len(notes) > MAX_NOTES_LENGTH:
            return None, api_error(f"notes must be at most {MAX_NOTES_LENGTH} characters")

    lines, error = normalize_order_items(payload.get("items"), allow_price_override)
    if error:
        return None, error

    merchandise_cents = sum(line["unit_price_cents"] * line["quantity"] for line in lines)
    customer_info = build_customer_info(user, billing_info)
    order = Order(
        user_id=user.id if user is not None else None,
        status="pending",
        customer_type="registered" if user is not None else "guest",
        customer_info=customer_info,
        customer_email=customer_info["email"],
        customer_name=f"{customer_info['firstName']} {customer_info['lastName']}".strip(),
        total_amount_cents=merchandise_cents + shipping_cost_cents,
        shipping_cost_cents=shipping_cost_cents,
        currency=currency,
        payment_method=payment_method,
        shipping_address=shipping_address,
        billing_info=billing_info,
        notes=notes,
    )
    for line in lines:
        order.items.append(
            OrderItem(
                product=line["product"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                size=line["size"],
            )
        )

    db.session.add(order)
    if user is not None and clear_cart:
        db.session.execute(delete(CartItem).where(CartItem.user_id == user.id))
    db.session.commit()

    current_app.logger.info(
        "Order %s placed by %s (%s cents)",
        order.id,
        order.customer_email,
        order.total_amount_cents,
    )
    sent, email_error = send_order_confirmation_email(order, order.customer_email)
    if not sent:
        current_app.logger.warning(
            "Order confirmation for %s not sent: %s", order.id, email_error
        )
    return order, None


def adjust_product_stock(product: Product, size: Optional[str], delta: int):
    """Shift stock by ``delta``, never below zero, keeping the size map in step."""
    product.quantity = max(0, (product.quantity or 0) + delta)
    if _tracks_size(product, size):
        size_stock = dict(product.size_stock)
        current = parse_int(size_stock.get(size)) or 0
        size_stock[size] = max(0, current + delta)
        product.size_stock = size_stock


def apply_status_change(order: Order, new_status: str):
    previous_status = order.status
    order.status = new_status

    if new_status in STOCK_CONSUMING_STATUSES and previous_status not in STOCK_CONSUMING_STATUSES:
        for item in order.items:
            if item.product is not None:
                adjust_product_stock(item.product, item.size, -item.quantity)
                current_app.logger.info(
                    "Stock reduced for product %s by %s (now %s)",
                    item.product.name,
                    item.quantity,
                    item.product.quantity,
                )
    elif new_status == "cancelled" and previous_status in STOCK_CONSUMING_STATUSES:
        for item in order.items:
            if item.product is not None:
                adjust_product_stock(item.product, item.size, item.quantity)
                current_app.logger.info(
                    "Stock restored for product %s by %s (now %s)",
                    item.product.name,
                    item.quantity,
                    item.product.quantity,
                )
    return previous_status
