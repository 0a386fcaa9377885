from typing import Dict, Iterable, Optional

from .helpers import isoformat, to_cents


def money(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def serialize_address(address) -> Dict:
    return {
        "id": address.id,
        "userId": address.user_id,
        "type": address.type,
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "zipCode": address.zip_code,
        "country": address.country,
        "isDefault": bool(address.is_default),
        "createdAt": isoformat(address.created_at),
        "updatedAt": isoformat(address.updated_at),
    }


def serialize_user(user, include_addresses: bool = False) -> Dict:
    """Public view of a user. Hashes, tokens and 2FA secrets never leave the server."""
    data = {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "fullName": user.full_name,
        "phone": user.phone,
        "isEmailVerified": bool(user.is_email_verified),
        "preferences": user.preferences or {},
        "isActive": bool(user.is_active),
        "isAdmin": bool(user.is_admin),
        "twoFactorEnabled": bool(user.two_factor_enabled),
        "lastLogin": isoformat(user.last_login),
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    }
    if include_addresses:
        data["addresses"] = [serialize_address(address) for address in user.addresses]
    return data


def serialize_category(category, product_count: Optional[int] = None) -> Dict:
    data = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "isActive": bool(category.is_active),
        "createdAt": isoformat(category.created_at),
        "updatedAt": isoformat(category.updated_at),
    }
    if product_count is not None:
        data["productCount"] = product_count
    return data


def serialize_product(product, include_categories: bool = True) -> Dict:
    images = list(product.images or [])
    data = {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "SKU": product.sku,
        "price": money(product.price),
        "priceCents": to_cents(product.price),
        "compareAtPrice": money(product.compare_at_price),
        "quantity": product.quantity,
        "sizeStock": product.size_stock,
        "barcode": product.barcode,
        "weightGrams": product.weight_grams,
        "imageUrl": product.image_url,
        "images": images,
        "mainThumbnailIndex": product.main_thumbnail_index or 0,
        "isActive": bool(product.is_active),
        "createdAt": isoformat(product.created_at),
        "updatedAt": isoformat(product.updated_at),
    }
    if include_categories:
        data["categories"] = [
            {"id": category.id, "name": category.name, "slug": category.slug}
            for category in product.categories
        ]
    return data


def serialize_collection(collection, include_products: bool = True) -> Dict:
    data = {
        "id": collection.id,
        "name": collection.name,
        "slug": collection.slug,
        "description": collection.description,
        "imageUrl": collection.image_url,
        "isActive": bool(collection.is_active),
        "sortOrder": collection.sort_order,
        "collectionType": collection.collection_type,
        "conditions": collection.conditions,
        "createdAt": isoformat(collection.created_at),
        "updatedAt": isoformat(collection.updated_at),
    }
    if include_products:
        products = []
        for link in collection.product_links:
            entry = serialize_product(link.product, include_categories=False)
            entry["position"] = link.position
            products.append(entry)
        data["products"] = products
    return data


def serialize_order_item(item) -> Dict:
    product = item.product
    return {
        "id": item.id,
        "orderId": item.order_id,
        "productId": item.product_id,
        "quantity": item.quantity,
        "unitPriceCents": item.unit_price_cents,
        "lineTotalCents": item.unit_price_cents * item.quantity,
        "size": item.size,
        "product": (
            {
                "id": product.id,
                "name": product.name,
                "slug": product.slug,
                "SKU": product.sku,
                "imageUrl": product.image_url,
            }
            if product
            else None
        ),
    }


def serialize_order(order, include_items: bool = True) -> Dict:
    data = {
        "id": order.id,
        "userId": order.user_id,
        "status": order.status,
        "customerType": order.customer_type,
        "customerInfo": order.customer_info,
        "customerEmail": order.customer_email,
        "customerName": order.customer_name,
        "totalAmountCents": order.total_amount_cents,
        "shippingCostCents": order.shipping_cost_cents,
        "currency": order.currency,
        "paymentMethod": order.payment_method,
        "shippingAddress": order.shipping_address,
        "billingInfo": order.billing_info,
        "notes": order.notes,
        "createdAt": isoformat(order.created_at),
        "updatedAt": isoformat(order.updated_at),
    }
    if order.user is not None:
        data["user"] = {
            "id": order.user.id,
            "email": order.user.email,
            "firstName": order.user.first_name,
            "lastName": order.user.last_name,
        }
    if include_items:
        data["items"] = [serialize_order_item(item) for item in order.items]
    return data


def serialize_cart(cart_items: Iterable) -> Dict:
    items = []
    subtotal_cents = 0
    total_items = 0
    for cart_item in cart_items:
        product = cart_item.product
        price_cents = to_cents(product.price)
        subtotal_cents += price_cents * cart_item.quantity
        total_items += cart_item.quantity
        items.append(
            {
                "id": product.id,
                "cartItemId": cart_item.id,
                "productId": product.id,
                "name": product.name,
                "price": money(product.price),
                "priceCents": price_cents,
                "image": product.image_url,
                "slug": product.slug,
                "SKU": product.sku,
                "stock": product.available_stock(cart_item.size),
                "size": cart_item.size,
                "quantity": cart_item.quantity,
            }
        )
    return {"items": items, "subtotalCents": subtotal_cents, "totalItems": total_items}


def serialize_wishlist_item(item) -> Dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "addedAt": isoformat(item.added_at),
        "product": serialize_product(item.product, include_categories=False),
    }
