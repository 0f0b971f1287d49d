"""
Translation of domain results into HTTP errors shared by several routers.
"""

from fastapi import status

from shared.utils.exceptions import DiscountCodeError
from rest_api.services.domain import RedemptionResult, RedemptionStatus

# Code missing, switched off or not in its date window
_NOT_AVAILABLE = frozenset({
    RedemptionStatus.NOT_FOUND,
    RedemptionStatus.INACTIVE,
    RedemptionStatus.OUTSIDE_WINDOW,
})


def discount_code_error(result: RedemptionResult, **log_context) -> DiscountCodeError:
    """
    HTTP error for a rejected code: 404 when the code is not available,
    400 when it exists but its usage limits are reached.
    """
    status_code = (
        status.HTTP_404_NOT_FOUND
        if result.status in _NOT_AVAILABLE
        else status.HTTP_400_BAD_REQUEST
    )
    return DiscountCodeError(status_code, result.status.value, result.message, **log_context)
