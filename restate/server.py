"""Flask application exposing device families over REST."""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, abort, jsonify, request
from werkzeug.exceptions import HTTPException

from restate.core.errors import ClientError, InternalError, TargetSelectionError
from restate.core.service import GatewayService

LOGGER = logging.getLogger(__name__)


class MalformedRequestError(ClientError):
    """Raised when a request body or query string cannot be decoded."""


def envelope(status: int, message: str, data: Any = None) -> tuple[Response, int]:
    return jsonify({"message": message, "data": data}), status


def _field(params: dict[str, Any], name: str) -> str | None:
    raw = params.get(name)
    if raw is None:
        return None
    return str(raw).strip()


def read_params() -> dict[str, Any]:
    """Request parameters from a JSON body, or from the query string otherwise."""
    if request.mimetype == "application/json":
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            raise MalformedRequestError("Malformed Or Empty JSON Body")
        return body
    return request.args.to_dict()


def create_app(service: GatewayService) -> Flask:
    app = Flask(__name__)
    prefix = f"/{service.api_version}"

    def _require_family(family: str) -> None:
        try:
            service.family(family)
        except TargetSelectionError:
            abort(404)

    @app.errorhandler(ClientError)
    def _handle_client_error(exc: ClientError):
        return envelope(400, str(exc))

    @app.errorhandler(InternalError)
    def _handle_internal_error(exc: InternalError):
        LOGGER.error("Request failed: %s", exc)
        return envelope(500, "Internal Server Error")

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        code = int(exc.code or 500)
        return envelope(code, exc.name)

    @app.after_request
    def _log_request(response: Response) -> Response:
        LOGGER.info("%s %s %d", request.method, request.path, response.status_code)
        return response

    @app.get(prefix)
    def list_families():
        return envelope(200, "OK", [family.route for family in service.list_families()])

    @app.route(f"{prefix}/<family>", methods=["GET", "POST"])
    def family_route(family: str):
        _require_family(family)
        if request.method == "GET":
            return envelope(200, "OK", service.device_names(family))

        params = read_params()
        hosts = _field(params, "hosts") or ""
        names = [host for host in hosts.replace(" ", "").split(",") if host]
        result = service.invoke(
            family,
            names,
            _field(params, "code") or "",
            _field(params, "value"),
        )
        return envelope(200, "OK", result.to_dict())

    @app.route(f"{prefix}/<family>/<name>", methods=["GET", "POST"])
    def device_route(family: str, name: str):
        _require_family(family)
        if request.method == "GET":
            return envelope(200, "OK", service.device_codes(family, name))

        params = read_params()
        status = service.invoke_device(
            family,
            name,
            _field(params, "code") or "",
            _field(params, "value"),
        )
        return envelope(200, "OK", status)

    return app
