from rest_framework import status
from rest_framework.response import Response

from marketplace.services.base import ErrorKinds, ServiceResult

KIND_STATUS = {
    ErrorKinds.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKinds.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKinds.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKinds.DUPLICATE_REFERENCE: status.HTTP_409_CONFLICT,
    ErrorKinds.INSUFFICIENT_BALANCE: status.HTTP_409_CONFLICT,
    ErrorKinds.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKinds.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(result: ServiceResult) -> Response:
    """Render a failed ServiceResult; the HTTP status follows the error kind."""
    return Response(
        {"error": result.error, "kind": result.kind, "detail": result.error_detail},
        status=KIND_STATUS.get(result.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )
