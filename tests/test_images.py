from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.sql.dml import Update

from content.images import delete_product_image, reorder_product_images, set_featured_image
from core.errors import NotFoundError, OwnershipError, ValidationError
from db.models import ProductImage


class _Result:
    def __init__(self, values) -> None:
        self._values = list(values)

    def scalars(self):
        return self

    def all(self):
        return list(self._values)

    def scalar_one_or_none(self):
        return self._values[0] if self._values else None


class _FakeSession:
    def __init__(self, *images: ProductImage) -> None:
        self.images = {image.id: image for image in images}
        self.statements: list[object] = []
        self.deleted: list[object] = []
        self.commits = 0

    def get(self, model, key):
        assert model is ProductImage
        return self.images.get(key)

    def execute(self, stmt):
        self.statements.append(stmt)
        if isinstance(stmt, Update):
            return _Result([])
        remaining = [i for i in self.images.values() if i not in self.deleted]
        return _Result(sorted(remaining, key=lambda i: i.display_order))

    def delete(self, obj):
        self.deleted.append(obj)

    def flush(self):
        pass

    def commit(self):
        self.commits += 1


class _FakeStorage:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.removed: list[str] = []

    def remove(self, path: str) -> None:
        if self.fail:
            raise RuntimeError("bucket unavailable")
        self.removed.append(path)


def _image(user_id, order: int, *, featured: bool = False, menu_item_id: str | None = "m1") -> ProductImage:
    return ProductImage(
        id=uuid4(),
        user_id=user_id,
        menu_item_id=menu_item_id,
        image_url=f"https://cdn/{order}.jpg",
        image_path=f"{user_id}/{order}.jpg",
        product_name="Tiramisu",
        is_featured=featured,
        display_order=order,
    )


def test_set_featured_issues_single_update() -> None:
    user_id = uuid4()
    first, second = _image(user_id, 0, featured=True), _image(user_id, 1)
    session = _FakeSession(first, second)

    result = set_featured_image(session, user_id=user_id, image_id=second.id)

    assert result is second and second.is_featured is True
    assert len(session.statements) == 1
    assert isinstance(session.statements[0], Update)
    assert session.commits == 1


def test_set_featured_rejects_foreign_or_unlinked_image() -> None:
    owner = uuid4()
    image = _image(owner, 0)
    with pytest.raises(OwnershipError):
        set_featured_image(_FakeSession(image), user_id=uuid4(), image_id=image.id)
    with pytest.raises(NotFoundError):
        set_featured_image(_FakeSession(), user_id=owner, image_id=uuid4())
    loose = _image(owner, 0, menu_item_id=None)
    with pytest.raises(ValidationError):
        set_featured_image(_FakeSession(loose), user_id=owner, image_id=loose.id)


def test_reorder_assigns_positions() -> None:
    user_id = uuid4()
    a, b, c = _image(user_id, 0), _image(user_id, 1), _image(user_id, 2)
    session = _FakeSession(a, b, c)

    ordered = reorder_product_images(session, user_id=user_id, menu_item_id="m1", image_ids=[c.id, a.id, b.id])

    assert ordered == [c, a, b]
    assert (c.display_order, a.display_order, b.display_order) == (0, 1, 2)
    assert session.commits == 1


def test_reorder_requires_exact_image_set() -> None:
    user_id = uuid4()
    a, b = _image(user_id, 0), _image(user_id, 1)
    with pytest.raises(ValidationError):
        reorder_product_images(_FakeSession(a, b), user_id=user_id, menu_item_id="m1", image_ids=[a.id])
    with pytest.raises(ValidationError):
        reorder_product_images(
            _FakeSession(a, b), user_id=user_id, menu_item_id="m1", image_ids=[a.id, a.id]
        )


def test_deleting_featured_image_promotes_next() -> None:
    user_id = uuid4()
    featured, other = _image(user_id, 0, featured=True), _image(user_id, 1)
    session = _FakeSession(featured, other)
    storage = _FakeStorage()

    delete_product_image(session, storage, user_id=user_id, image_id=featured.id)

    assert session.deleted == [featured]
    assert other.is_featured is True
    assert storage.removed == [featured.image_path]
    assert session.commits == 1


def test_storage_failure_does_not_undo_row_delete() -> None:
    user_id = uuid4()
    image = _image(user_id, 0)
    session = _FakeSession(image)

    delete_product_image(session, _FakeStorage(fail=True), user_id=user_id, image_id=image.id)

    assert session.deleted == [image]
    assert session.commits == 1
