from __future__ import annotations

import pytest
from sqlalchemy import text

from shopcore.core.errors import MigrationInconsistency
from shopcore.migrations import order_state_type
from shopcore.models.order import OrderState
from tests.helpers import sqlite_engine

LEGACY_ROWS = [
    (1, "cart"),
    (2, "address"),
    (3, "delivery"),
    (4, "payment"),
    (5, "confirmed"),
    (6, "complete"),
    (7, "cancelled"),
    (8, "on_hold"),
]


@pytest.fixture
def legacy_engine():
    """An orders table still holding text states."""
    engine = sqlite_engine()
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE orders ("
                " id INTEGER PRIMARY KEY,"
                " number VARCHAR(64) NOT NULL,"
                " state VARCHAR(32) NOT NULL DEFAULT 'cart')"
            )
        )
        for row_id, state in LEGACY_ROWS:
            conn.execute(
                text("INSERT INTO orders (id, number, state) VALUES (:id, :number, :state)"),
                {"id": row_id, "number": f"R{row_id:04d}", "state": state},
            )
    yield engine
    engine.dispose()


def _states(engine) -> dict:
    with engine.connect() as conn:
        return dict(conn.execute(text("SELECT id, state FROM orders ORDER BY id")).all())


def test_lookup_table_matches_order_state():
    assert order_state_type.STATE_TO_CODE == {s.name.lower(): s.value for s in OrderState}
    assert order_state_type.state_to_code("unknown") == order_state_type.FALLBACK_CODE
    assert order_state_type.code_to_state(99) == order_state_type.FALLBACK_STATE
    assert order_state_type.code_to_state(None) == "cart"


def test_upgrade_maps_text_to_codes(legacy_engine):
    count = order_state_type.run(legacy_engine, "up")

    assert count == len(LEGACY_ROWS)
    assert _states(legacy_engine) == {
        1: 0, 2: 1, 3: 2, 4: 3, 5: 4, 6: 5, 7: 6,
        8: 0,  # unknown text falls back to cart
    }


def test_up_then_down_restores_known_states(legacy_engine):
    order_state_type.run(legacy_engine, "up")
    order_state_type.run(legacy_engine, "down")

    expected = dict(LEGACY_ROWS)
    expected[8] = "cart"
    assert _states(legacy_engine) == expected


def test_new_rows_after_upgrade_default_to_cart_code(legacy_engine):
    order_state_type.run(legacy_engine, "up")
    with legacy_engine.begin() as conn:
        conn.execute(text("INSERT INTO orders (id, number) VALUES (9, 'R0009')"))

    assert _states(legacy_engine)[9] == 0


def test_failed_row_update_rolls_back_everything(legacy_engine, monkeypatch):
    real_write = order_state_type._write_state

    def flaky_write(conn, row_id, value):
        if row_id == 5:
            return 0
        return real_write(conn, row_id, value)

    monkeypatch.setattr(order_state_type, "_write_state", flaky_write)

    with pytest.raises(MigrationInconsistency) as excinfo:
        order_state_type.run(legacy_engine, "up")

    assert excinfo.value.expected == len(LEGACY_ROWS)
    assert excinfo.value.updated == len(LEGACY_ROWS) - 1
    # column type change was rolled back together with the row updates
    assert _states(legacy_engine) == dict(LEGACY_ROWS)


def test_run_rejects_unknown_direction(legacy_engine):
    with pytest.raises(ValueError):
        order_state_type.run(legacy_engine, "sideways")
