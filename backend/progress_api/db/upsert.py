from __future__ import annotations

from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from progress_api.db.session import dialect_name


def upsert_rows(db: Session, model, values: list[dict], index_elements: list[str], update_columns: list[str]) -> int:
    """INSERT ... ON CONFLICT / ON DUPLICATE KEY UPDATE keyed on a unique index.

    Rows sharing a key inside ``values`` are collapsed first (last one wins);
    PostgreSQL rejects a single statement that touches the same key twice.
    The caller owns the transaction.
    """
    if not values:
        return 0
    by_key: dict[tuple, dict] = {}
    for row in values:
        by_key[tuple(row[c] for c in index_elements)] = row
    rows = list(by_key.values())

    table = model.__table__
    dialect = dialect_name(db)
    if dialect == 'mysql':
        insert_stmt = mysql_insert(table).values(rows)
        stmt = insert_stmt.on_duplicate_key_update(
            {c: insert_stmt.inserted[c] for c in update_columns}
        )
    else:
        insert_fn = pg_insert if dialect == 'postgresql' else sqlite_insert
        insert_stmt = insert_fn(table).values(rows)
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=[getattr(table.c, c) for c in index_elements],
            set_={c: getattr(insert_stmt.excluded, c) for c in update_columns},
        )
    db.execute(stmt)
    return len(rows)
