from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from shopcore.core.errors import RemoteIndexError
from shopcore.core.search_client import NullIndexer, SearchIndexer, build_product_document
from shopcore.models.image import Image
from shopcore.models.product import Product


def _product() -> Product:
    return Product(
        id=uuid.UUID("00000000-0000-0000-0000-000000000001"),
        name="Linen Shirt",
        slug="linen-shirt-blue",
        description="Breathable summer shirt",
        selling_price_amount=Decimal("20.00"),
        selling_price_currency="USD",
        max_retail_price_amount=Decimal("25.00"),
        max_retail_price_currency="USD",
        state="active",
        store="north",
        updated_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


def test_build_product_document():
    parent_id = uuid.uuid4()
    image = Image(name="products/p/images/1.png", url="https://cdn/1.png", is_default=True)

    doc = build_product_document(_product(), parent_id=parent_id, images=[image], tenant="shop-a")

    assert doc["id"] == "00000000-0000-0000-0000-000000000001"
    assert doc["slug"] == "linen-shirt-blue"
    assert doc["parent_id"] == str(parent_id)
    assert doc["images"] == [
        {"name": "products/p/images/1.png", "url": "https://cdn/1.png", "is_default": True}
    ]
    assert doc["selling_price"] == {"amount": "20.00", "currency": "USD"}
    assert doc["max_retail_price"] == {"amount": "25.00", "currency": "USD"}
    assert doc["tenant"] == "shop-a"
    assert doc["rating_summary"] == {"average": 0.0, "count": 0}
    assert doc["updated_at"] == "2024-05-01T12:00:00+00:00"
    assert doc["filters"] == {"state": "active", "taxon_id": None, "store": "north"}
    assert doc["suggest"] == ["linen", "shirt", "blue"]


def test_index_product_puts_document():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"result": "created"})

    client = httpx.Client(base_url="http://search.test", transport=httpx.MockTransport(handler))
    indexer = SearchIndexer("http://search.test", index="products", client=client)
    doc = build_product_document(_product())

    indexer.index_product(doc)

    [request] = seen
    assert request.method == "PUT"
    assert request.url.path == f"/products/_doc/{doc['id']}"
    assert json.loads(request.content)["slug"] == "linen-shirt-blue"


def test_index_product_error_status_raises():
    client = httpx.Client(
        base_url="http://search.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    indexer = SearchIndexer("http://search.test", client=client)

    with pytest.raises(RemoteIndexError):
        indexer.index_product(build_product_document(_product()))


def test_index_product_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(base_url="http://search.test", transport=httpx.MockTransport(handler))
    indexer = SearchIndexer("http://search.test", client=client)

    with pytest.raises(RemoteIndexError):
        indexer.index_product(build_product_document(_product()))


def test_null_indexer_accepts_anything():
    NullIndexer().index_product({"id": "x"})
