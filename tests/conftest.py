"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database (see tests.helpers).
"""

from __future__ import annotations

import os

# Settings are read lazily, but must resolve before any service is built.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from shopcore.database import register_models  # noqa: E402
from shopcore.models.product import Product, ProductState  # noqa: E402
from shopcore.models.taxon import Taxon  # noqa: E402
from shopcore.repositories.product_repo import ProductRepository  # noqa: E402
from shopcore.repositories.taxon_repo import TaxonRepository  # noqa: E402
from shopcore.services.product_service import ProductService  # noqa: E402
from tests.fakes import FakeImageStore, FakeIndexer  # noqa: E402
from tests.helpers import sqlite_engine  # noqa: E402


@pytest.fixture
def engine():
    engine = sqlite_engine()
    register_models()
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def image_store() -> FakeImageStore:
    return FakeImageStore()


@pytest.fixture
def indexer() -> FakeIndexer:
    return FakeIndexer()


@pytest.fixture
def product_service(image_store, indexer) -> ProductService:
    return ProductService(
        ProductRepository(),
        image_store=image_store,
        indexer=indexer,
        taxon_repo=TaxonRepository(),
        tenant="test-shop",
    )


@pytest.fixture
def make_product(session):
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "name": f"Product {n}",
            "slug": f"product-{n}",
            "selling_price_amount": Decimal("10.00"),
            "max_retail_price_amount": Decimal("12.00"),
            "state": ProductState.ACTIVE.value,
        }
        fields.update(overrides)
        product = Product(**fields)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_taxon(session):
    def _make(name: str, parent: Taxon | None = None) -> Taxon:
        taxon = Taxon(name=name, parent_id=parent.id if parent else None)
        session.add(taxon)
        session.commit()
        session.refresh(taxon)
        return taxon

    return _make
