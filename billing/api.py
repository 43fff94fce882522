from rest_framework import status
from rest_framework.exceptions import APIException


class RateUnavailableError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "exchange rate not available for this period"
    default_code = "rate_unavailable"


class InvoiceTransitionError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "invoice status transition not allowed"
    default_code = "invalid_transition"
