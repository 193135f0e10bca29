from typing import Any, Dict, Optional
from fastapi.responses import JSONResponse

from app.schemas.assignment import SelectionFailure
from app.services.exceptions import HTTP_STATUS_BY_KIND


def error_response(failure: SelectionFailure, extra: Optional[Dict[str, Any]] = None) -> JSONResponse:
    """JSON error body for a typed engine failure, with the kind's HTTP status."""
    details = dict(failure.details)
    if failure.suggestion:
        details["suggestion"] = failure.suggestion
    content = {
        "error": failure.message,
        "code": failure.kind,
        "details": details,
        "retryable": failure.retryable,
    }
    if extra:
        content.update(extra)
    return JSONResponse(status_code=HTTP_STATUS_BY_KIND.get(failure.kind, 500), content=content)
