from .admin import register_admin_routes
from .auth import register_auth_routes
from .cart import register_cart_routes
from .categories import register_category_routes
from .collections import register_collection_routes
from .health import register_health_routes
from .orders import register_order_routes
from .products import register_product_routes
from .wishlist import register_wishlist_routes


def register_routes(app):
    register_health_routes(app)
    register_auth_routes(app)
    register_product_routes(app)
    register_category_routes(app)
    register_collection_routes(app)
    register_cart_routes(app)
    register_wishlist_routes(app)
    register_order_routes(app)
    register_admin_routes(app)
