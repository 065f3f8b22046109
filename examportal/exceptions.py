import logging

from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """
    Renders every API error as {"error": <message>, "code": <code>}.
    Field-level validation errors are kept under "fields".
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    detail = response.data
    code = getattr(exc, "default_code", "error")
    if hasattr(exc, "get_codes"):
        codes = exc.get_codes()
        if isinstance(codes, str):
            code = codes

    if isinstance(detail, dict) and "detail" in detail:
        body = {"error": str(detail["detail"]), "code": code}
    elif isinstance(detail, dict):
        body = {"error": "Invalid input.", "code": "invalid", "fields": detail}
    elif isinstance(detail, list):
        body = {"error": " ".join(str(d) for d in detail), "code": code}
    else:
        body = {"error": str(detail), "code": code}

    if response.status_code >= 500:
        logger.error("API error in %s: %s", context.get("view"), body["error"])

    response.data = body
    return response
