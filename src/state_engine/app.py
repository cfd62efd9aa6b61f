from __future__ import annotations

import logging
import os
from typing import Any, Mapping

from flask import Flask, abort, jsonify, request
from werkzeug.exceptions import BadRequest, HTTPException

from .constraints import ConstraintConflictError
from .explorer import EXPLORER_SCHEMA
from .ranking import RANKING_SCHEMA
from .resolver import ResolvedState, Schema, StateChange, StateResolver
from .serializer import to_query_string

DEFAULT_SCHEMAS: dict[str, Schema] = {
    EXPLORER_SCHEMA.name: EXPLORER_SCHEMA,
    RANKING_SCHEMA.name: RANKING_SCHEMA,
}


def _configure_observability(app: Flask, app_name: str) -> None:
    app.config["APP_NAME"] = app_name
    level_name = os.environ.get("APP_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    app.logger.setLevel(level)


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def _configure_error_handlers(app: Flask) -> None:
    @app.errorhandler(BadRequest)
    def handle_bad_request(error: BadRequest) -> Any:
        app.logger.warning("bad_request", extra={"path": request.path, "method": request.method, "error": str(error)})
        if _is_api_request():
            return jsonify({"error": error.description or "invalid request payload"}), 400
        return error

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException) -> Any:
        app.logger.warning(
            "http_error",
            extra={"path": request.path, "method": request.method, "status_code": error.code, "error": error.description},
        )
        if _is_api_request():
            return jsonify({"error": error.description}), error.code
        return error

    @app.errorhandler(ConstraintConflictError)
    def handle_constraint_conflict(error: ConstraintConflictError) -> Any:
        app.logger.error("constraint_conflict", extra={"path": request.path, "error": str(error)})
        return jsonify({"error": str(error)}), 500

    @app.errorhandler(ValueError)
    def handle_value_error(error: ValueError) -> Any:
        app.logger.warning("invalid_state_request", extra={"path": request.path, "error": str(error)})
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception) -> Any:
        app.logger.exception("unexpected_error", extra={"path": request.path, "method": request.method})
        if _is_api_request():
            return jsonify({"error": "internal server error"}), 500
        raise error


def _log_state_change(app: Flask, source: str, schema: str, resolved: ResolvedState) -> None:
    app.logger.info(
        "state_change_served",
        extra={
            "source": source,
            "schema": schema,
            "view": resolved.view,
            "change_count": len(resolved.log.changes),
            "changed_fields": list(resolved.changed_fields),
        },
    )


def _json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise BadRequest("request body must be a JSON object")
    return payload


def _state_from(payload: Mapping[str, Any]) -> dict[str, Any]:
    state = payload.get("state")
    if not isinstance(state, dict):
        raise BadRequest("'state' must be an object")
    return state


def _overrides_from(payload: Mapping[str, Any]) -> set[str]:
    overrides = payload.get("user_overrides", [])
    if not isinstance(overrides, list) or not all(isinstance(name, str) for name in overrides):
        raise BadRequest("'user_overrides' must be a list of field names")
    return set(overrides)


def _describe_schema(schema: Schema) -> dict[str, Any]:
    views = []
    for view in schema.views:
        flag = schema.views.flag_for(view.id)
        views.append({
            "id": view.id,
            "label": view.label,
            "flag": {"key": flag.key, "value": flag.value} if flag is not None else None,
            "defaults": schema.views.defaults_for(view.id),
            "ui": {element: rule.describe() for element, rule in view.ui.items()},
            "compatibility": {name: list(allowed) for name, allowed in view.compatibility.items()},
            "owned_fields": list(view.owned_fields),
            "constraints": [_describe_constraint(constraint) for constraint in view.constraints],
        })
    return {
        "name": schema.name,
        "base_view": schema.views.base,
        "fields": [
            {
                "name": entry.name,
                "key": entry.key,
                "legacy_keys": [legacy.key for legacy in entry.legacy_keys],
                "is_array": entry.is_array,
            }
            for entry in schema.fields
        ],
        "views": views,
        "constraints": [_describe_constraint(constraint) for constraint in schema.constraints],
    }


def _describe_constraint(constraint: Any) -> dict[str, Any]:
    when = constraint.when
    if callable(when):
        when = getattr(when, "__name__", "callable")
    return {
        "when": when,
        "apply": dict(constraint.apply),
        "reason": constraint.reason,
        "priority": constraint.priority,
        "allow_user_override": constraint.allow_user_override,
    }


def create_state_app(schemas: Mapping[str, Schema] | None = None) -> Flask:
    app = Flask(__name__)
    _configure_observability(app, "state-engine")
    _configure_error_handlers(app)
    app.config["STATE_SCHEMAS"] = dict(schemas or DEFAULT_SCHEMAS)
    resolvers: dict[str, StateResolver] = {}

    def _resolver(name: str) -> StateResolver:
        schema = app.config["STATE_SCHEMAS"].get(name)
        if schema is None:
            abort(404, description=f"unknown schema '{name}'")
        if name not in resolvers:
            resolvers[name] = StateResolver(schema)
        return resolvers[name]

    def _bundle(resolver: StateResolver, resolved: ResolvedState) -> dict[str, Any]:
        params = resolver.serialize(resolved.state)
        payload = resolved.to_dict()
        payload["params"] = params
        payload["query"] = to_query_string(params)
        return payload

    @app.get("/healthz")
    def healthz() -> Any:
        return jsonify({"status": "ok", "app": app.config["APP_NAME"], "schemas": sorted(app.config["STATE_SCHEMAS"])})

    @app.get("/api/<schema_name>/schema")
    def describe_schema(schema_name: str) -> Any:
        resolver = _resolver(schema_name)
        return jsonify(_describe_schema(resolver.schema))

    @app.get("/api/<schema_name>/state")
    def initial_state(schema_name: str) -> Any:
        resolver = _resolver(schema_name)
        resolved = resolver.resolve_initial(request.args.to_dict(flat=False))
        _log_state_change(app, source="api.state", schema=schema_name, resolved=resolved)
        return jsonify(_bundle(resolver, resolved))

    @app.post("/api/<schema_name>/change")
    def change_state(schema_name: str) -> Any:
        resolver = _resolver(schema_name)
        payload = _json_payload()
        change = payload.get("change")
        if not isinstance(change, dict) or not isinstance(change.get("field"), str):
            raise BadRequest("'change' must be an object with a 'field' name")

        field_name = change["field"]
        if field_name not in resolver.fields and field_name != resolver.views.view_field:
            raise BadRequest(f"unknown field '{field_name}'")

        value = change.get("value")
        entry = resolver.fields.get(field_name)
        if entry is not None and isinstance(value, str):
            try:
                value = entry.decode_raw(value)
            except ValueError as exc:
                raise BadRequest(f"invalid value for '{field_name}': {exc}") from exc

        resolved = resolver.resolve_change(
            StateChange(field=field_name, value=value, source=str(change.get("source", "user"))),
            _state_from(payload),
            _overrides_from(payload),
        )
        _log_state_change(app, source="api.change", schema=schema_name, resolved=resolved)
        return jsonify(_bundle(resolver, resolved))

    @app.post("/api/<schema_name>/view")
    def change_view(schema_name: str) -> Any:
        resolver = _resolver(schema_name)
        payload = _json_payload()
        view_id = payload.get("view")
        if not isinstance(view_id, str):
            raise BadRequest("'view' must be a view id")

        resolved = resolver.resolve_view_change(view_id, _state_from(payload), _overrides_from(payload))
        _log_state_change(app, source="api.view", schema=schema_name, resolved=resolved)
        return jsonify(_bundle(resolver, resolved))

    @app.post("/api/<schema_name>/serialize")
    def serialize_state(schema_name: str) -> Any:
        resolver = _resolver(schema_name)
        params = resolver.serialize(_state_from(_json_payload()))
        return jsonify({"params": params, "query": to_query_string(params)})

    return app
