from flask import jsonify


def success_response(message: str, data=None, status_code: int = 200):
    return jsonify(success=True, message=message, data=data), status_code


def error_response(message: str, error=None, status_code: int = 500, details=None):
    body = {"success": False, "message": message, "error": error}
    if details is not None:
        body["details"] = details
    return jsonify(body), status_code
