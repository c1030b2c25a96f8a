from datetime import datetime

from sqlalchemy.inspection import inspect
from sqlalchemy.sql import ClauseElement

def sa_to_dict(obj, exclude=None, prefix=None):
    """Convert a SQLAlchemy ORM object to a plain dict.

    Datetimes are rendered as ISO-8601 strings so the result is JSON ready.

    Args:
        obj: SQLAlchemy ORM instance to convert.
        exclude: Optional set/list of attribute names to exclude from the dict.
        prefix: Optional string to prefix to each dict key.

    Returns:
        dict: Mapping of column attribute name -> value for the given ORM object.
    """
    exclude = exclude or set()
    prefix = prefix or ""
    return {
        prefix + c.key: to_json_value(getattr(obj, c.key))
        for c in inspect(obj).mapper.column_attrs
        if c.key not in exclude
    }


def loaded_to_dict(obj) -> dict:
    """Like `sa_to_dict` but only for attributes already loaded in memory.

    Never emits SQL, so it is safe inside flush/commit hooks where expired
    attributes must not be refreshed.
    """
    state = inspect(obj)
    return {
        c.key: to_json_value(state.dict[c.key])
        for c in state.mapper.column_attrs
        if c.key in state.dict and not isinstance(state.dict[c.key], ClauseElement)
    }


def to_json_value(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value
