"""INSERT .. ON CONFLICT DO UPDATE for the dialects we deploy on"""

from sqlalchemy.orm import Session
from sqlalchemy.sql import func


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Upsert not supported for dialect: {dialect}")
    return insert


def upsert(db: Session, model, values: dict, conflict_columns: list[str], update_columns=None) -> None:
    """
    Insert a row or overwrite the listed columns of the row that owns the
    conflict key. One statement, so concurrent writers cannot create duplicates.
    Does not commit.
    """
    insert = _insert_for(db)
    stmt = insert(model).values(**values)

    if update_columns is None:
        update_columns = [column for column in values if column not in conflict_columns]
    set_ = {column: stmt.excluded[column] for column in update_columns}
    if hasattr(model, "updated_at"):
        set_["updated_at"] = func.now()

    db.execute(stmt.on_conflict_do_update(index_elements=conflict_columns, set_=set_))
