# shopcore/migrations/order_state_type.py
"""
Rewrite orders.state from a text column to an integer-backed enum.

    upgrade:   'confirmed' -> 4      (unknown text -> 0)
    downgrade: 4 -> 'confirmed'      (unknown code -> 'cart')

Both directions read every (id, state) pair, replace the column, then
write each mapped value back by id. Everything runs in one transaction;
if any row update does not touch exactly one row the whole migration is
rolled back with MigrationInconsistency, column change included.
"""
import logging
from typing import Literal

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from shopcore.core.errors import MigrationInconsistency
from shopcore.models.order import OrderState

logger = logging.getLogger(__name__)

TABLE = "orders"
REVISION = "20181206_order_state_type"

# Frozen at the time of this migration; do not derive from OrderState,
# which may grow new members later.
ORDER_STATE_CODES_V1: tuple[tuple[str, int], ...] = (
    ("cart", 0),
    ("address", 1),
    ("delivery", 2),
    ("payment", 3),
    ("confirmed", 4),
    ("complete", 5),
    ("cancelled", 6),
)
FALLBACK_CODE = 0
FALLBACK_STATE = "cart"


def _check_table() -> tuple[dict[str, int], dict[int, str]]:
    names = [name for name, _ in ORDER_STATE_CODES_V1]
    codes = [code for _, code in ORDER_STATE_CODES_V1]
    if len(set(names)) != len(names) or len(set(codes)) != len(codes):
        raise RuntimeError(f"{REVISION}: duplicate entries in ORDER_STATE_CODES_V1")
    to_code = dict(ORDER_STATE_CODES_V1)
    to_name = {code: name for name, code in ORDER_STATE_CODES_V1}
    if to_code.get(FALLBACK_STATE) != FALLBACK_CODE:
        raise RuntimeError(f"{REVISION}: fallback state and code disagree")
    for name, code in ORDER_STATE_CODES_V1:
        if OrderState(code).name.lower() != name:
            raise RuntimeError(f"{REVISION}: {name}={code} does not match OrderState")
    return to_code, to_name


STATE_TO_CODE, CODE_TO_STATE = _check_table()


def state_to_code(state: str | None) -> int:
    return STATE_TO_CODE.get(state or "", FALLBACK_CODE)


def code_to_state(code: int | None) -> str:
    if code is None:
        return FALLBACK_STATE
    return CODE_TO_STATE.get(int(code), FALLBACK_STATE)


def _read_states(conn: Connection) -> list[tuple]:
    return list(conn.execute(text(f"SELECT id, state FROM {TABLE}")).all())


def _replace_column(conn: Connection, ddl_type: str) -> None:
    conn.execute(text(f"ALTER TABLE {TABLE} DROP COLUMN state"))
    conn.execute(text(f"ALTER TABLE {TABLE} ADD COLUMN state {ddl_type}"))


def _write_state(conn: Connection, row_id, value) -> int:
    result = conn.execute(
        text(f"UPDATE {TABLE} SET state = :state WHERE id = :id"),
        {"state": value, "id": row_id},
    )
    return result.rowcount


def _write_all(conn: Connection, mapped: list[tuple]) -> None:
    updated = 0
    for row_id, value in mapped:
        if _write_state(conn, row_id, value) == 1:
            updated += 1
    if updated != len(mapped):
        raise MigrationInconsistency(expected=len(mapped), updated=updated)


def upgrade(conn: Connection) -> int:
    """
    Text states -> integer codes. Returns the number of rows rewritten.
    """
    mapped = [(row_id, state_to_code(state)) for row_id, state in _read_states(conn)]
    _replace_column(conn, f"INTEGER NOT NULL DEFAULT {FALLBACK_CODE}")
    _write_all(conn, mapped)
    return len(mapped)


def downgrade(conn: Connection) -> int:
    """
    Integer codes -> text states. Returns the number of rows rewritten.
    """
    mapped = [(row_id, code_to_state(code)) for row_id, code in _read_states(conn)]
    _replace_column(conn, f"VARCHAR(32) NOT NULL DEFAULT '{FALLBACK_STATE}'")
    _write_all(conn, mapped)
    return len(mapped)


def run(engine: Engine, direction: Literal["up", "down"] = "up") -> int:
    """
    Apply the migration in a single transaction.
    """
    step = {"up": upgrade, "down": downgrade}.get(direction)
    if step is None:
        raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")

    with engine.begin() as conn:
        count = step(conn)
    logger.info("%s %s applied to %d rows", REVISION, direction, count)
    return count
