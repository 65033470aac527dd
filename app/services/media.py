"""Product media and the default-image rule.

A product with one or more media rows has exactly one flagged default; a
product with none has no default. Every write below re-establishes that
inside a single transaction with the product row locked.
"""
import logging
from typing import BinaryIO, List, Optional

from sqlalchemy.orm import Session

from app import media_store
from app.errors import integration_error, not_found
from app.models import Media, Product

logger = logging.getLogger(__name__)


def _lock_product(db: Session, product_id: str) -> Product:
    product = db.get(Product, product_id, with_for_update=True, populate_existing=True)
    if product is None:
        raise not_found("Product not found")
    return product


def _discard(images: List[media_store.StoredImage]) -> None:
    for image in images:
        media_store.purge_image(image.public_id)


def add_media(db: Session, product_id: str, files: List[BinaryIO], uploaded_by_id: Optional[str] = None) -> List[Media]:
    if db.get(Product, product_id) is None:
        raise not_found("Product not found")
    # Release the read transaction before the slow uploads
    db.rollback()

    # Upload outside any transaction; the CDN calls are the slow part
    stored = []
    try:
        for f in files:
            stored.append(media_store.upload_image(f))
    except Exception:
        logger.exception("Error uploading media for product %s", product_id)
        _discard(stored)
        raise integration_error("Error uploading images")

    try:
        _lock_product(db, product_id)
        has_media = db.query(Media.id).filter(Media.product_id == product_id).first() is not None

        created = []
        for index, image in enumerate(stored):
            media = Media(
                product_id=product_id,
                url=image.url,
                public_id=image.public_id,
                uploaded_by_id=uploaded_by_id,
                is_default=not has_media and index == 0,
            )
            db.add(media)
            created.append(media)
        db.commit()
    except Exception:
        db.rollback()
        # No row references these uploads
        _discard(stored)
        raise

    for media in created:
        db.refresh(media)
    return created


def delete_media(db: Session, product_id: str, media_id: int) -> Optional[str]:
    """Delete one media row, handing the default flag to the oldest survivor.

    Returns the CDN public id so the caller can schedule the purge once the
    transaction has committed.
    """
    try:
        _lock_product(db, product_id)
        media = (
            db.query(Media)
            .filter(Media.id == media_id, Media.product_id == product_id)
            .first()
        )
        if media is None:
            raise not_found("Media for product not found")

        was_default = media.is_default
        public_id = media.public_id
        db.delete(media)
        db.flush()

        if was_default:
            survivor = (
                db.query(Media)
                .filter(Media.product_id == product_id)
                .order_by(Media.id)
                .first()
            )
            if survivor is not None:
                survivor.is_default = True
        db.commit()
    except Exception:
        db.rollback()
        raise

    return public_id


def set_default_media(db: Session, product_id: str, media_id: int) -> Media:
    try:
        _lock_product(db, product_id)
        media = (
            db.query(Media)
            .filter(Media.id == media_id, Media.product_id == product_id)
            .first()
        )
        if media is None:
            raise not_found("Media for product not found")

        db.query(Media).filter(Media.product_id == product_id).update(
            {Media.is_default: False}, synchronize_session="fetch"
        )
        media.is_default = True
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(media)
    return media

