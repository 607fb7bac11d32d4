# Overview: Service-layer operations for the product catalog and categories.

"""
Catalog Service

Products own four collections (images, colors, sizes, features). When a
collection key is present in a create/update payload the whole collection is
replaced; absent keys leave the stored collection untouched.

Deleting a product is a soft delete (is_active=False) so order items and
reports that reference it keep working.
"""
from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import (
    Category,
    Product,
    ProductColor,
    ProductFeature,
    ProductImage,
    ProductSize,
)
from ..validation import ConflictError, ValidationError

COLLECTION_KEYS = ("images", "colors", "sizes", "features")
FEATURED_LIMIT = 6
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


class CatalogError(Exception):
    """Raised for catalog operation errors."""
    def __init__(self, message: str, status_code: int = 400, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


def _clamp_per_page(per_page: int | None) -> int:
    if not per_page or per_page < 1:
        return DEFAULT_PER_PAGE
    return min(per_page, MAX_PER_PAGE)


# -- collections -------------------------------------------------------------

def _build_images(raw: list) -> list[ProductImage]:
    images = []
    for index, item in enumerate(raw):
        if isinstance(item, str):
            item = {"image_url": item}
        if not isinstance(item, dict) or not item.get("image_url"):
            raise ValidationError("images entries need an image_url")
        images.append(ProductImage(
            image_url=str(item["image_url"]).strip(),
            alt_text=item.get("alt_text"),
            is_primary=bool(item.get("is_primary", False)),
            sort_order=int(item.get("sort_order", index)),
        ))
    # Exactly one primary image when any exist
    if images and not any(i.is_primary for i in images):
        images[0].is_primary = True
    seen_primary = False
    for image in images:
        if image.is_primary and seen_primary:
            image.is_primary = False
        seen_primary = seen_primary or image.is_primary
    return images


def _build_colors(raw: list) -> list[ProductColor]:
    colors = []
    for item in raw:
        if isinstance(item, str):
            item = {"color_name": item}
        if not isinstance(item, dict) or not item.get("color_name"):
            raise ValidationError("colors entries need a color_name")
        colors.append(ProductColor(color_name=str(item["color_name"]).strip(), color_code=item.get("color_code")))
    return colors


def _build_sizes(raw: list) -> list[ProductSize]:
    sizes = []
    for item in raw:
        value = item.get("size") if isinstance(item, dict) else item
        if not value or not str(value).strip():
            raise ValidationError("sizes entries cannot be blank")
        sizes.append(ProductSize(size=str(value).strip()))
    return sizes


def _build_features(raw: list) -> list[ProductFeature]:
    features = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("feature_name"):
            raise ValidationError("features entries need a feature_name")
        features.append(ProductFeature(
            feature_name=str(item["feature_name"]).strip(),
            feature_value=item.get("feature_value"),
        ))
    return features


_BUILDERS = {
    "images": _build_images,
    "colors": _build_colors,
    "sizes": _build_sizes,
    "features": _build_features,
}


def apply_collections(product: Product, payload: dict) -> None:
    for key in COLLECTION_KEYS:
        if key not in payload:
            continue
        raw = payload[key] or []
        if not isinstance(raw, list):
            raise ValidationError(f"{key} must be a list")
        setattr(product, key, _BUILDERS[key](raw))


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if not db.session.get(Category, category_id):
        raise CatalogError("Category not found", details={"category_id": category_id})


# -- products ----------------------------------------------------------------

def list_products(
    *,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    category_id: int | None = None,
    active: bool | None = None,
    featured: bool | None = None,
) -> dict:
    """
    Product listing with optional pagination.

    If page is omitted all matching items are returned.
    """
    query = db.session.query(Product)

    if active is not None:
        query = query.filter(Product.is_active.is_(active))
    if featured is not None:
        query = query.filter(Product.is_featured.is_(featured))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.title.ilike(like), Product.description.ilike(like)))

    query = query.order_by(Product.created_at.desc(), Product.id.desc())

    if page is None:
        items = query.all()
        return {"items": [p.to_dict() for p in items], "count": len(items)}

    per_page = _clamp_per_page(per_page)
    page = max(page, 1)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [p.to_dict() for p in items],
        "count": len(items),
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


def list_featured_products(limit: int = FEATURED_LIMIT) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.is_featured.is_(True))
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(limit)
        .all()
    )


def get_product(product_id: int, *, active_only: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if not product or (active_only and not product.is_active):
        raise CatalogError("Product not found", status_code=404)
    return product


def create_product(patch: dict, payload: dict) -> Product:
    _require_category(patch.get("category_id"))

    product = Product(**patch)
    apply_collections(product, payload)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, patch: dict, payload: dict) -> Product:
    product = get_product(product_id)
    if "category_id" in patch:
        _require_category(patch["category_id"])

    try:
        for key, value in patch.items():
            setattr(product, key, value)
        apply_collections(product, payload)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return product


def deactivate_product(product_id: int) -> Product:
    product = get_product(product_id)
    product.is_active = False
    db.session.commit()
    return product


def delete_product_image(product_id: int, image_id: int) -> Product:
    product = get_product(product_id)
    image = next((i for i in product.images if i.id == image_id), None)
    if image is None:
        raise CatalogError("Image not found", status_code=404)

    was_primary = image.is_primary
    product.images.remove(image)
    if was_primary and product.images:
        product.images[0].is_primary = True

    db.session.commit()
    return product


def set_primary_image(product_id: int, image_id: int) -> Product:
    product = get_product(product_id)
    if not any(i.id == image_id for i in product.images):
        raise CatalogError("Image not found", status_code=404)

    for image in product.images:
        image.is_primary = image.id == image_id

    db.session.commit()
    return product


# -- categories --------------------------------------------------------------

def _active_product_counts() -> dict[int, int]:
    rows = (
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.category_id.isnot(None))
        .group_by(Product.category_id)
        .all()
    )
    return {category_id: count for category_id, count in rows}


def list_categories(active_only: bool = False) -> list[dict]:
    query = db.session.query(Category)
    if active_only:
        query = query.filter(Category.is_active.is_(True))
    categories = query.order_by(Category.sort_order.asc(), Category.name.asc()).all()
    counts = _active_product_counts()
    return [c.to_dict(product_count=counts.get(c.id, 0)) for c in categories]


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise CatalogError("Category not found", status_code=404)
    return category


def _ensure_unique_category_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f"Category '{name}' already exists")


def create_category(patch: dict) -> Category:
    _ensure_unique_category_name(patch["name"])
    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, patch: dict) -> Category:
    category = get_category(category_id)
    if patch.get("name"):
        _ensure_unique_category_name(patch["name"], exclude_id=category.id)
    for key, value in patch.items():
        setattr(category, key, value)
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    """Delete a category; refused while active products still reference it."""
    category = get_category(category_id)
    in_use = (
        db.session.query(func.count(Product.id))
        .filter(Product.category_id == category.id, Product.is_active.is_(True))
        .scalar()
    )
    if in_use:
        raise ConflictError(f"Category is used by {in_use} active product(s)")

    db.session.query(Product).filter(Product.category_id == category.id).update(
        {Product.category_id: None}, synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()
