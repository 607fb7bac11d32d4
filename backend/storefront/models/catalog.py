from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self, product_count: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if product_count is not None:
            data["product_count"] = product_count
        return data


class Product(db.Model):
    """
    Catalog product.

    WHY: stock_quantity is the only inventory figure. It is decremented
    exclusively by order confirmation and never incremented by the order flow;
    staff restock through the product update endpoint.

    Soft delete: is_active=False hides the product from the public catalog and
    from ingestion, while historical order items keep their snapshot.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_featured", "is_active", "is_featured"),
        db.Index("ix_products_active_stock", "is_active", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=True)
    sale_price_cents = db.Column(db.Integer, nullable=True)
    is_on_sale = db.Column(db.Boolean, nullable=False, default=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    images = db.relationship(
        "ProductImage",
        order_by="ProductImage.sort_order",
        cascade="all, delete-orphan",
        lazy=True,
    )
    colors = db.relationship("ProductColor", cascade="all, delete-orphan", lazy=True)
    sizes = db.relationship("ProductSize", cascade="all, delete-orphan", lazy=True)
    features = db.relationship("ProductFeature", cascade="all, delete-orphan", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} title={self.title!r} stock={self.stock_quantity}>"

    @property
    def effective_price_cents(self) -> int:
        if self.is_on_sale and self.sale_price_cents is not None:
            return self.sale_price_cents
        return self.price_cents

    @property
    def primary_image_url(self) -> str | None:
        for image in self.images:
            if image.is_primary:
                return image.image_url
        return self.images[0].image_url if self.images else None

    def to_dict(self, include_collections: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price_cents": self.price_cents,
            "original_price_cents": self.original_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "is_on_sale": self.is_on_sale,
            "effective_price_cents": self.effective_price_cents,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "stock_quantity": self.stock_quantity,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "primary_image_url": self.primary_image_url,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_collections:
            data["images"] = [i.to_dict() for i in self.images]
            data["colors"] = [c.to_dict() for c in self.colors]
            data["sizes"] = [s.size for s in self.sizes]
            data["features"] = [f.to_dict() for f in self.features]
        return data


class ProductImage(db.Model):
    __tablename__ = "product_images"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    image_url = db.Column(db.String(512), nullable=False)
    alt_text = db.Column(db.String(255), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "image_url": self.image_url,
            "alt_text": self.alt_text,
            "is_primary": self.is_primary,
            "sort_order": self.sort_order,
        }


class ProductColor(db.Model):
    __tablename__ = "product_colors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    color_name = db.Column(db.String(64), nullable=False)
    color_code = db.Column(db.String(16), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "color_name": self.color_name, "color_code": self.color_code}


class ProductSize(db.Model):
    __tablename__ = "product_sizes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    size = db.Column(db.String(32), nullable=False)


class ProductFeature(db.Model):
    __tablename__ = "product_features"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    feature_name = db.Column(db.String(128), nullable=False)
    feature_value = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "feature_name": self.feature_name, "feature_value": self.feature_value}
