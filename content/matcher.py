from __future__ import annotations

from typing import Any, Iterable, Sequence


def attach_product_images(
    days: list[dict[str, Any]],
    menu_items: Sequence[dict[str, Any]],
    product_images: Iterable[Any],
) -> list[dict[str, Any]]:
    """Attach the best reference image to every day naming a known product.

    Days are enriched in place with ``productImageUrl``/``productImageId``;
    nothing is removed or reordered, and days without a match are left as is.
    """
    menu_by_name: dict[str, str] = {}
    for item in menu_items:
        name = _normalize(item.get("name"))
        if name and item.get("id") is not None:
            menu_by_name.setdefault(name, str(item["id"]))

    images_by_item: dict[str, list[Any]] = {}
    for image in product_images:
        if image.menu_item_id is None:
            continue
        images_by_item.setdefault(str(image.menu_item_id), []).append(image)

    for day in days:
        suggested = _normalize(day.get("suggestedProduct"))
        if not suggested:
            continue
        menu_item_id = menu_by_name.get(suggested)
        if menu_item_id is None:
            continue
        selected = select_reference_image(images_by_item.get(menu_item_id, []))
        if selected is None:
            continue
        day["productImageUrl"] = selected.image_url
        day["productImageId"] = str(selected.id)
    return days


def select_reference_image(images: Sequence[Any]) -> Any | None:
    if not images:
        return None
    ordered = sorted(images, key=_display_key)
    for image in ordered:
        if image.is_featured:
            return image
    return ordered[0]


def _display_key(image: Any) -> tuple[int, float]:
    order = image.display_order if image.display_order is not None else 0
    created = image.created_at.timestamp() if image.created_at is not None else 0.0
    return order, created


def _normalize(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().casefold()
