"""HTTP constants of the API layer."""

from typing import Final

CORRELATION_ID_HEADER: Final = "X-Correlation-ID"

# Status codes produced by the error handlers
HTTP_400_BAD_REQUEST: Final = 400
HTTP_404_NOT_FOUND: Final = 404
HTTP_422_UNPROCESSABLE: Final = 422
HTTP_500_INTERNAL_SERVER_ERROR: Final = 500
