from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from supabase import Client, create_client

from core.errors import ConfigurationError, NotFoundError, OwnershipError, ValidationError
from db.models import ProductImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConfig:
    url: str = ""
    service_role_key: str = ""
    bucket: str = "product-images"


def load_storage_config() -> StorageConfig:
    return StorageConfig(
        url=os.getenv("SUPABASE_URL", "").strip(),
        service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip(),
        bucket=os.getenv("PRODUCT_IMAGES_BUCKET", "product-images").strip() or "product-images",
    )


class ProductImageStorage:
    def __init__(self, client: Client, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def remove(self, path: str) -> None:
        self.client.storage.from_(self.bucket).remove([path])


def get_image_storage() -> ProductImageStorage:
    config = load_storage_config()
    if not config.url or not config.service_role_key:
        raise ConfigurationError("Supabase storage credentials not configured")
    return ProductImageStorage(create_client(config.url, config.service_role_key), config.bucket)


def _owned_image(session, *, user_id: UUID, image_id: UUID) -> ProductImage:
    image = session.get(ProductImage, image_id)
    if image is None:
        raise NotFoundError("Product image not found")
    if image.user_id != user_id:
        raise OwnershipError()
    return image


def set_featured_image(session, *, user_id: UUID, image_id: UUID) -> ProductImage:
    """Mark one image featured and clear the flag on its siblings in one UPDATE."""
    image = _owned_image(session, user_id=user_id, image_id=image_id)
    if image.menu_item_id is None:
        raise ValidationError("Image is not linked to a menu item")
    session.execute(
        update(ProductImage)
        .where(
            ProductImage.user_id == user_id,
            ProductImage.menu_item_id == image.menu_item_id,
        )
        .values(is_featured=ProductImage.id == image_id)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    image.is_featured = True
    return image


def reorder_product_images(
    session, *, user_id: UUID, menu_item_id: str, image_ids: Sequence[UUID]
) -> list[ProductImage]:
    images = session.execute(
        select(ProductImage).where(
            ProductImage.user_id == user_id,
            ProductImage.menu_item_id == menu_item_id,
        )
    ).scalars().all()
    by_id = {image.id: image for image in images}
    if len(set(image_ids)) != len(image_ids) or set(image_ids) != set(by_id):
        raise ValidationError("imageIds must list every image of the menu item exactly once")
    ordered = [by_id[image_id] for image_id in image_ids]
    for index, image in enumerate(ordered):
        image.display_order = index
    session.commit()
    return ordered


def delete_product_image(
    session, storage: ProductImageStorage, *, user_id: UUID, image_id: UUID
) -> None:
    image = _owned_image(session, user_id=user_id, image_id=image_id)
    path = image.image_path
    was_featured = bool(image.is_featured)
    menu_item_id = image.menu_item_id
    session.delete(image)
    session.flush()

    if was_featured and menu_item_id is not None:
        successor = session.execute(
            select(ProductImage)
            .where(
                ProductImage.user_id == user_id,
                ProductImage.menu_item_id == menu_item_id,
            )
            .order_by(ProductImage.display_order, ProductImage.created_at)
            .limit(1)
        ).scalar_one_or_none()
        if successor is not None:
            successor.is_featured = True
    session.commit()

    try:
        storage.remove(path)
    except Exception:
        logger.warning("Storage deletion failed for %s", path, exc_info=True)
