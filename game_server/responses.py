from flask import jsonify, make_response

from .config import allowed_origin
from .errors import ProviderError


def cors(resp, origin: str = None):
    resp.headers["Access-Control-Allow-Origin"] = origin or allowed_origin()
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    return resp


def preflight(origin: str = None):
    return cors(make_response("", 204), origin)


def json_response(payload: dict, status: int = 200, origin: str = None):
    return cors(make_response(jsonify(payload), status), origin)


def error_response(message: str, status: int, error: str, code=None, origin: str = None, **extra):
    payload = {"success": False, "message": message, "error": error}
    if code is not None:
        payload["code"] = code
    payload.update(extra)
    return json_response(payload, status, origin)


def provider_error_response(message: str, err: ProviderError, origin: str = None):
    return error_response(
        message, err.status, err.message, code=err.code, origin=origin, details=err.details
    )
