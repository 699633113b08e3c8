"""
Domain errors and the DRF exception handler (HackSoft Django Styleguide, Approach 1).

The handler converts Django's ValidationError into DRF's so the API always
returns a consistent JSON error format, and turns anything unhandled into a
generic 500 that never leaks internal detail.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.serializers import as_serializer_error
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Unrecoverable ingestion failure; aborts the whole sync run."""


class FeedDownloadError(FeedError):
    pass


class FeedParseError(FeedError):
    pass


def custom_exception_handler(exc, ctx):
    """
    1. Convert Django ValidationError -> DRF ValidationError.
    2. Ensure ``response.data`` always has the ``detail`` key.
    3. Log unexpected errors and answer with a generic 500.
    """
    if isinstance(exc, DjangoValidationError):
        exc = exceptions.ValidationError(as_serializer_error(exc))

    response = exception_handler(exc, ctx)

    if response is None:
        view = ctx.get("view")
        logger.exception(
            "[API] unhandled error in %s", type(view).__name__ if view else "view",
            exc_info=exc,
        )
        return Response(
            {"detail": "Internal server error."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(getattr(exc, "detail", None), (list, dict)):
        response.data = {"detail": response.data}

    return response
