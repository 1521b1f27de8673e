"""
Compare-and-set status updates
"""
from typing import Any, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session


def guarded_update(
    db: Session,
    model: Any,
    row_id: int,
    expected_status: Any,
    values: dict,
    extra_criteria: Optional[Iterable[Any]] = None,
) -> bool:
    """
    UPDATE model SET values WHERE id = row_id AND status IN expected_status

    Args:
        db: Database session (not committed here)
        model: Mapped class with ``id`` and ``status`` columns
        row_id: Primary key of the row
        expected_status: A status or a tuple of statuses the row must be in
        values: Column values to set
        extra_criteria: Additional WHERE clauses

    Returns:
        True if exactly one row changed
    """
    if isinstance(expected_status, (list, tuple, set, frozenset)):
        status_clause = model.status.in_(list(expected_status))
    else:
        status_clause = model.status == expected_status

    stmt = (
        update(model)
        .where(model.id == row_id, status_clause, *(extra_criteria or ()))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1
