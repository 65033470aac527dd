from typing import List, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from app.errors import conflict, not_found
from app.models import Category, Product
from app.pagination import paginate_offset
from app.schemas import CategoryRequest, ProductQuery, ProductRequest, ProductUpdateRequest


def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name).all()


def create_category(db: Session, data: CategoryRequest) -> Category:
    if db.query(Category).filter(Category.name == data.name).first():
        raise conflict("Category already exists")
    category = Category(name=data.name)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def _check_category(db: Session, category_id):
    if category_id and db.get(Category, category_id) is None:
        raise not_found("Category not found")


def list_products(db: Session, params: ProductQuery, published_only: bool = True) -> Tuple[List[Product], int]:
    query = db.query(Product).options(selectinload(Product.media))

    if published_only:
        query = query.filter(Product.is_published.is_(True))
    elif params.is_published is not None:
        query = query.filter(Product.is_published.is_(params.is_published))

    if params.category:
        query = query.filter(Product.category_id == params.category)
    if params.min_price is not None:
        query = query.filter(Product.price >= params.min_price)
    if params.max_price is not None:
        query = query.filter(Product.price <= params.max_price)
    if params.search_query:
        term = f"%{params.search_query}%"
        query = query.filter(or_(Product.name.like(term), Product.description.like(term)))

    column = getattr(Product, params.sort_by)
    order_by = [column.asc() if params.sort_order == "asc" else column.desc(), Product.id]
    return paginate_offset(query, params.page, params.page_size, order_by)


def get_product(db: Session, product_id: str) -> Product:
    product = (
        db.query(Product)
        .options(selectinload(Product.media))
        .filter(Product.id == product_id)
        .first()
    )
    if product is None:
        raise not_found("Product not found")
    return product


def create_product(db: Session, data: ProductRequest, user_id: str) -> Product:
    _check_category(db, data.category_id)
    product = Product(**data.model_dump(), user_id=user_id)
    db.add(product)
    db.commit()
    return get_product(db, product.id)


def update_product(db: Session, product_id: str, data: ProductUpdateRequest) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise not_found("Product not found")

    # Only category_id may be cleared with an explicit null
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key == "category_id"
    }
    if "category_id" in changes:
        _check_category(db, changes["category_id"])
    for key, value in changes.items():
        setattr(product, key, value)
    db.commit()
    return get_product(db, product_id)


def delete_product(db: Session, product_id: str) -> List[str]:
    """Delete a product and its media rows; returns CDN ids to purge."""
    product = get_product(db, product_id)
    public_ids = [m.public_id for m in product.media if m.public_id]
    db.delete(product)
    db.commit()
    return public_ids
