from __future__ import annotations

import copy
from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

from content.matcher import attach_product_images, select_reference_image


def _image(menu_item_id: str, *, order: int = 0, featured: bool = False, day: int = 1):
    image_id = uuid4()
    return SimpleNamespace(
        id=image_id,
        menu_item_id=menu_item_id,
        image_url=f"https://cdn.example/{image_id}.jpg",
        is_featured=featured,
        display_order=order,
        created_at=datetime(2026, 1, day, tzinfo=timezone.utc),
    )


MENU = [
    {"id": "m1", "name": "Tiramisu"},
    {"id": "m2", "name": "Flat White"},
]


def test_featured_image_wins_over_display_order() -> None:
    first = _image("m1", order=0)
    featured = _image("m1", order=3, featured=True)
    days = [{"day": 1, "suggestedProduct": "  tiramisu "}]

    attach_product_images(days, MENU, [first, featured])

    assert days[0]["productImageUrl"] == featured.image_url
    assert days[0]["productImageId"] == str(featured.id)


def test_falls_back_to_lowest_display_order() -> None:
    later = _image("m2", order=2)
    earliest = _image("m2", order=0, day=5)
    days = [{"day": 1, "suggestedProduct": "FLAT WHITE"}]

    attach_product_images(days, MENU, [later, earliest])

    assert days[0]["productImageId"] == str(earliest.id)


def test_display_order_ties_break_on_created_at() -> None:
    newer = _image("m2", order=0, day=9)
    older = _image("m2", order=0, day=2)
    assert select_reference_image([newer, older]) is older


def test_unmatched_days_are_untouched_and_order_is_kept() -> None:
    image = _image("m1")
    days = [
        {"day": 1, "theme": "No product"},
        {"day": 2, "suggestedProduct": "Croissant"},
        {"day": 3, "suggestedProduct": "Tiramisu"},
        {"day": 4, "suggestedProduct": "Flat White"},
    ]

    result = attach_product_images(days, MENU, [image])

    assert [d["day"] for d in result] == [1, 2, 3, 4]
    assert "productImageUrl" not in result[0]
    assert "productImageUrl" not in result[1]
    assert result[2]["productImageUrl"] == image.image_url
    assert "productImageUrl" not in result[3]


def test_days_without_a_match_stay_identical() -> None:
    image = _image("m1")
    days = [
        {"day": 1, "theme": "No product", "hashtags": ["#a"]},
        {"day": 2, "suggestedProduct": "Croissant", "cta": "Visit"},
        {"day": 3, "suggestedProduct": "Tiramisu"},
        {"day": 4, "suggestedProduct": "Flat White"},
    ]
    before = copy.deepcopy(days)

    result = attach_product_images(days, MENU, [image])

    assert len(result) == len(before)
    for index in (0, 1, 3):
        assert result[index] == before[index]
    assert result[2] == before[2] | {
        "productImageUrl": image.image_url,
        "productImageId": str(image.id),
    }


def test_no_suggested_products_leaves_input_unchanged() -> None:
    days = [{"day": n, "theme": f"Theme {n}", "hashtags": ["#x"]} for n in range(1, 6)]
    before = copy.deepcopy(days)

    result = attach_product_images(days, MENU, [_image("m1", featured=True), _image("m2")])

    assert result == before
