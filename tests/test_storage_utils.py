from __future__ import annotations

import uuid
from unittest.mock import MagicMock

import pytest

from shopcore.core.errors import BlobStoreError
from shopcore.core.storage_utils import SupabaseImageStore, generate_filename, product_prefix
from shopcore.schemas.product import NewImage


@pytest.fixture
def client():
    return MagicMock()


def test_generate_filename():
    name = generate_filename("png")

    assert name.endswith(".png")
    uuid.UUID(name[:-4])


def test_store_uploads_under_product_prefix(client):
    store = SupabaseImageStore(client=client, bucket="assets")
    product_id = uuid.uuid4()

    reference = store.store(NewImage(content_type="image/webp", data=b"img"), product_id)

    assert reference.startswith(product_prefix(product_id))
    assert reference.endswith(".webp")
    client.storage.from_.assert_called_with("assets")
    path, data, options = client.storage.from_.return_value.upload.call_args.args
    assert path == reference
    assert data == b"img"
    assert options["content-type"] == "image/webp"


def test_store_failure_is_wrapped(client):
    client.storage.from_.return_value.upload.side_effect = RuntimeError("503")
    store = SupabaseImageStore(client=client, bucket="assets")

    with pytest.raises(BlobStoreError):
        store.store(NewImage(content_type="image/png", data=b"img"), uuid.uuid4())


def test_store_rejects_unknown_content_type(client):
    store = SupabaseImageStore(client=client, bucket="assets")

    with pytest.raises(BlobStoreError):
        store.store(NewImage(content_type="text/plain", data=b"x"), uuid.uuid4())
    client.storage.from_.return_value.upload.assert_not_called()


def test_delete_removes_reference(client):
    store = SupabaseImageStore(client=client, bucket="assets")
    product_id = uuid.uuid4()
    reference = product_prefix(product_id) + "a.png"

    store.delete(reference, product_id)

    client.storage.from_.return_value.remove.assert_called_once_with([reference])


def test_delete_refuses_other_products_blobs(client):
    store = SupabaseImageStore(client=client, bucket="assets")

    with pytest.raises(BlobStoreError):
        store.delete(product_prefix(uuid.uuid4()) + "a.png", uuid.uuid4())
    client.storage.from_.return_value.remove.assert_not_called()


def test_public_url_failure_is_wrapped(client):
    client.storage.from_.return_value.get_public_url.side_effect = RuntimeError("no url")
    store = SupabaseImageStore(client=client, bucket="assets")

    with pytest.raises(BlobStoreError):
        store.public_url("products/x/images/a.png")
