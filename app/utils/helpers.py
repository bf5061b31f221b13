"""Shared blueprint helpers.

get_or_404:   tuple-return lookup (no abort)
parse_bool:   query-string / JSON boolean parsing
"""
from app.models import db
from app.utils.errors import E, api_error

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (response, 404))

        obj, err = get_or_404(Notification, nid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if not obj:
        return None, api_error(E.NOT_FOUND, f"{label} not found")
    return obj, None


def parse_bool(value, default=None):
    """Interpret ``value`` as a boolean; ``default`` when absent or unrecognised."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return default

