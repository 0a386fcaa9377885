from datetime import timedelta
from uuid import uuid4

from sqlalchemy import CheckConstraint, UniqueConstraint, select
from sqlalchemy.dialects.postgresql import JSONB

from .extensions import db
from .helpers import is_numeric_id, utcnow

JSONType = db.JSON().with_variant(JSONB(), "postgresql")

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)

ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "paid",
    "shipped",
    "delivered",
    "cancelled",
)
STOCK_CONSUMING_STATUSES = {"paid", "delivered"}
CUSTOMER_TYPES = ("registered", "guest")
ADDRESS_TYPES = ("home", "work", "other")
COLLECTION_TYPES = ("manual", "automatic", "smart")


def generate_uuid() -> str:
    return str(uuid4())


def default_preferences():
    return {
        "newsletter": True,
        "marketingEmails": True,
        "sizePreference": "M",
        "favoriteCategories": [],
    }


class TimestampMixin:
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class User(TimestampMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    phone = db.Column(db.String(20))
    is_email_verified = db.Column(db.Boolean, nullable=False, default=False)
    email_verification_token = db.Column(db.String(255))
    email_verification_expires = db.Column(db.DateTime)
    password_reset_token = db.Column(db.String(255))
    password_reset_expires = db.Column(db.DateTime)
    preferences = db.Column(JSONType, nullable=False, default=default_preferences)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    two_factor_enabled = db.Column(db.Boolean, nullable=False, default=False)
    two_factor_secret = db.Column(db.String(64))
    backup_codes = db.Column(JSONType, nullable=False, default=list)
    last_login = db.Column(db.DateTime)
    login_attempts = db.Column(db.Integer, nullable=False, default=0)
    lock_until = db.Column(db.DateTime)

    addresses = db.relationship(
        "Address",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Address.id",
    )
    orders = db.relationship("Order", back_populates="user")
    cart_items = db.relationship(
        "CartItem", back_populates="user", cascade="all, delete-orphan"
    )
    wishlist_items = db.relationship(
        "WishlistItem", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_locked(self) -> bool:
        return bool(self.lock_until and self.lock_until > utcnow())

    def register_failed_login(self):
        """Count a failed password; the fifth failure (or any while locked) sets the lock."""
        if self.lock_until and not self.is_locked:
            self.reset_login_attempts()
        self.login_attempts = (self.login_attempts or 0) + 1
        if self.login_attempts >= MAX_LOGIN_ATTEMPTS or self.is_locked:
            self.lock_until = utcnow() + LOCK_DURATION

    def reset_login_attempts(self):
        self.login_attempts = 0
        self.lock_until = None

    def __repr__(self):
        return f"<User {self.email}>"


class Address(TimestampMixin, db.Model):
    __tablename__ = "addresses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = db.Column(db.String(10), nullable=False, default="home")
    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(100), nullable=False, default="United States")
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User", back_populates="addresses")


product_categories = db.Table(
    "product_categories",
    db.Column(
        "product_id",
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "category_id",
        db.Integer,
        db.ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column("created_at", db.DateTime, nullable=False, default=utcnow),
)


class ProductCollection(db.Model):
    __tablename__ = "product_collections"

    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    collection_id = db.Column(
        db.Integer, db.ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="collection_links")
    collection = db.relationship("Collection", back_populates="product_links")


class Product(TimestampMixin, db.Model):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity"),
        CheckConstraint("price >= 0", name="ck_products_price"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), unique=True, nullable=False, index=True)
    description = db.Column(db.Text)
    sku = db.Column("SKU", db.String(100), unique=True, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    compare_at_price = db.Column(db.Numeric(10, 2))
    quantity = db.Column(db.Integer, nullable=False, default=0)
    size_stock = db.Column(JSONType)
    barcode = db.Column(db.String(100))
    weight_grams = db.Column(db.Integer)
    image_url = db.Column(db.String(500))
    images = db.Column(JSONType, nullable=False, default=list)
    main_thumbnail_index = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    categories = db.relationship(
        "Category",
        secondary=product_categories,
        back_populates="products",
        order_by="Category.name",
    )
    collection_links = db.relationship(
        "ProductCollection", back_populates="product", cascade="all, delete-orphan"
    )
    cart_items = db.relationship(
        "CartItem", back_populates="product", cascade="all, delete-orphan"
    )
    wishlist_items = db.relationship(
        "WishlistItem", back_populates="product", cascade="all, delete-orphan"
    )

    def available_stock(self, size=None) -> int:
        if size and isinstance(self.size_stock, dict) and size in self.size_stock:
            try:
                return int(self.size_stock.get(size) or 0)
            except (TypeError, ValueError):
                return 0
        return self.quantity or 0

    def __repr__(self):
        return f"<Product {self.sku}>"


class Category(TimestampMixin, db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    slug = db.Column(db.String(140), unique=True, nullable=False, index=True)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    products = db.relationship(
        "Product", secondary=product_categories, back_populates="categories"
    )


class Collection(TimestampMixin, db.Model):
    __tablename__ = "collections"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), unique=True, nullable=False, index=True)
    description = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    collection_type = db.Column(db.String(20), nullable=False, default="manual")
    conditions = db.Column(JSONType)

    product_links = db.relationship(
        "ProductCollection",
        back_populates="collection",
        cascade="all, delete-orphan",
        order_by="ProductCollection.position",
    )

    @property
    def products(self):
        return [link.product for link in self.product_links]


class Order(TimestampMixin, db.Model):
    __tablename__ = "orders"

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    customer_type = db.Column(db.String(20), nullable=False, default="registered")
    customer_info = db.Column(JSONType)
    customer_email = db.Column(db.String(255), index=True)
    customer_name = db.Column(db.String(120))
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    payment_method = db.Column(db.String(50))
    shipping_address = db.Column(JSONType)
    billing_info = db.Column(JSONType)
    notes = db.Column(db.String(500))

    user = db.relationship("User", back_populates="orders")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
    )


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),
        CheckConstraint("unit_price_cents >= 0", name="ck_order_items_price"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    order_id = db.Column(
        db.String(36),
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    size = db.Column(db.String(20))

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")


class CartItem(TimestampMixin, db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "size", name="uq_cart_user_product_size"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    quantity = db.Column(db.Integer, nullable=False, default=1)
    size = db.Column(db.String(20))

    user = db.relationship("User", back_populates="cart_items")
    product = db.relationship("Product", back_populates="cart_items")


class WishlistItem(TimestampMixin, db.Model):
    __tablename__ = "wishlist_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_wishlist_user_product"),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    added_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", back_populates="wishlist_items")
    product = db.relationship("Product", back_populates="wishlist_items")


def find_by_id_or_slug(model, value):
    if is_numeric_id(value):
        return db.session.get(model, int(value))
    return db.session.scalar(select(model).where(model.slug == str(value)))
