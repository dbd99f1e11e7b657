# shopcore/core/search_client.py
import logging
import re
from functools import lru_cache
from typing import Any

import httpx

from shopcore.core.config import get_settings
from shopcore.core.errors import RemoteIndexError

logger = logging.getLogger(__name__)


def _money(amount, currency: str) -> dict[str, Any]:
    return {"amount": str(amount), "currency": currency}


def _keywords(*values: str | None) -> list[str]:
    """
    Lowercased unique words for autocomplete, in first-seen order.
    """
    seen: dict[str, None] = {}
    for value in values:
        for word in re.split(r"[^0-9a-zA-Z]+", value or ""):
            if word:
                seen.setdefault(word.lower(), None)
    return list(seen)


def build_product_document(
    product,
    parent_id=None,
    images: list | None = None,
    tenant: str = "default",
    rating_summary: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Serialize a product into the search index mapping.

    Reviews are not stored in this service, so rating_summary defaults to
    an empty summary and is kept only so the mapping stays complete.
    """
    return {
        "id": str(product.id),
        "slug": product.slug,
        "parent_id": str(parent_id) if parent_id else None,
        "images": [
            {"name": img.name, "url": img.url, "is_default": img.is_default}
            for img in images or []
        ],
        "rating_summary": rating_summary or {"average": 0.0, "count": 0},
        "selling_price": _money(product.selling_price_amount, product.selling_price_currency),
        "max_retail_price": _money(
            product.max_retail_price_amount, product.max_retail_price_currency
        ),
        "tenant": tenant,
        "name": product.name,
        "description": product.description,
        "updated_at": product.updated_at.isoformat() if product.updated_at else None,
        "filters": {
            "state": product.state,
            "taxon_id": str(product.taxon_id) if product.taxon_id else None,
            "store": product.store,
        },
        "suggest": _keywords(product.name, product.slug),
    }


class SearchIndexer:
    """
    Pushes product documents into an Elasticsearch-compatible index.

    Each push is a single `PUT /<index>/_doc/<id>`; any transport error or
    non-2xx response becomes RemoteIndexError. No retries.
    """

    def __init__(
        self,
        base_url: str,
        index: str = "products",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        self.index = index
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def index_product(self, document: dict[str, Any]) -> None:
        doc_id = document["id"]
        try:
            response = self._client.put(f"/{self.index}/_doc/{doc_id}", json=document)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteIndexError(f"indexing product {doc_id} failed: {exc}") from exc
        logger.debug("indexed product %s into %s", doc_id, self.index)

    def close(self) -> None:
        self._client.close()


class NullIndexer:
    """
    Used when SEARCH_URL is not configured.
    """

    def index_product(self, document: dict[str, Any]) -> None:
        logger.debug("search disabled; skipping product %s", document.get("id"))


@lru_cache
def search_indexer() -> SearchIndexer | NullIndexer:
    settings = get_settings()
    if not settings.SEARCH_URL:
        return NullIndexer()
    return SearchIndexer(
        settings.SEARCH_URL,
        index=settings.SEARCH_INDEX,
        timeout=settings.SEARCH_TIMEOUT_SECONDS,
    )
