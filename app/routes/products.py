from typing import Annotated, List

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from app import media_store
from app.auth import PRODUCTS_WRITE, Principal, require_permission
from app.database import get_db
from app.errors import validation_error
from app.pagination import paging_info
from app.schemas import (
    CategoryOut,
    CategoryRequest,
    MediaOut,
    ProductOut,
    ProductQuery,
    ProductRequest,
    ProductUpdateRequest,
    empty_result,
    envelope,
)
from app.services import catalog, media

MAX_PHOTOS = 5

router = APIRouter(prefix="/product", tags=["products"])
categories = APIRouter(prefix="/category", tags=["categories"])


def _product(product) -> dict:
    return ProductOut.model_validate(product).model_dump(mode="json")


def _media(item) -> dict:
    return MediaOut.model_validate(item).model_dump(mode="json")


@categories.get("")
def list_categories(db: Session = Depends(get_db)):
    return envelope(
        "Categories fetched successfully",
        categories=[CategoryOut.model_validate(c).model_dump(mode="json") for c in catalog.list_categories(db)],
    )


@categories.post("", status_code=201)
def create_category(
    request: CategoryRequest,
    _: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    category = catalog.create_category(db, request)
    return envelope("Category created successfully", category=CategoryOut.model_validate(category).model_dump(mode="json"))


def _listing(db: Session, params: ProductQuery, published_only: bool):
    products, total = catalog.list_products(db, params, published_only=published_only)
    if not total:
        return empty_result("No products found", paging_info=paging_info(0, 1, params.page_size), products=[])
    return envelope(
        "Products fetched successfully",
        paging_info=paging_info(total, params.page, params.page_size),
        products=[_product(p) for p in products],
    )


@router.get("")
def list_products(params: Annotated[ProductQuery, Query()], db: Session = Depends(get_db)):
    return _listing(db, params, published_only=True)


@router.get("/admin")
def list_products_for_admin(
    params: Annotated[ProductQuery, Query()],
    _: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    return _listing(db, params, published_only=False)


@router.post("", status_code=201)
def create_product(
    request: ProductRequest,
    principal: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    product = catalog.create_product(db, request, principal.user_id)
    return envelope("Product created successfully", product=_product(product))


@router.get("/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    return envelope("Product fetched successfully", product=_product(catalog.get_product(db, product_id)))


@router.patch("/{product_id}")
def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    _: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    product = catalog.update_product(db, product_id, request)
    return envelope("Product updated successfully", product=_product(product))


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    background_tasks: BackgroundTasks,
    _: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    for public_id in catalog.delete_product(db, product_id):
        background_tasks.add_task(media_store.purge_image, public_id)
    return envelope("Product deleted successfully")


@router.post("/{product_id}/media", status_code=201)
def add_media(
    product_id: str,
    photos: List[UploadFile] = File(...),
    principal: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    if not 1 <= len(photos) <= MAX_PHOTOS:
        raise validation_error(f"Between 1 and {MAX_PHOTOS} images are required")
    for photo in photos:
        if not (photo.content_type or "").startswith("image/"):
            raise validation_error(f"{photo.filename} is not an image")

    created = media.add_media(db, product_id, [photo.file for photo in photos], principal.user_id)
    return envelope("Media successfully added to product", media=[_media(m) for m in created])


@router.patch("/{product_id}/media/{media_id}")
def set_default_media(
    product_id: str,
    media_id: int,
    _: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    updated = media.set_default_media(db, product_id, media_id)
    return envelope("Product's default media successfully updated", media=_media(updated))


@router.delete("/{product_id}/media/{media_id}")
def delete_media(
    product_id: str,
    media_id: int,
    background_tasks: BackgroundTasks,
    _: Principal = Depends(require_permission(PRODUCTS_WRITE)),
    db: Session = Depends(get_db),
):
    public_id = media.delete_media(db, product_id, media_id)
    # Runs after the response; a failed purge only leaves a dangling CDN object
    background_tasks.add_task(media_store.purge_image, public_id)
    return envelope("Media deleted successfully")
