from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import urlencode

from .fields import values_equal
from .views import GENERIC_VIEW_KEY

if TYPE_CHECKING:
    from .resolver import Schema


def serialize(schema: Schema, state: Mapping[str, Any]) -> dict[str, str]:
    """Minimal external form of `state`.

    The view marker comes first, then every registered field whose value
    differs from the active view's effective default. Legacy keys are never
    written.
    """
    views = schema.views
    view = views.active(state)
    params: dict[str, str] = {}

    if view.id != views.base:
        flag = views.flag_for(view.id)
        if flag is not None:
            params[flag.key] = flag.value
        else:
            params[GENERIC_VIEW_KEY] = view.id

    defaults = views.defaults_for(view.id)
    for entry in schema.fields:
        if entry.name not in state:
            continue
        value = state[entry.name]
        if values_equal(value, defaults.get(entry.name)):
            continue
        encoded = entry.encode_value(value)
        if encoded is None:
            continue
        params[entry.key] = encoded

    return params


def to_query_string(params: Mapping[str, str]) -> str:
    return urlencode(list(params.items()), safe=",")


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)
