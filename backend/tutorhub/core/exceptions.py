# backend/tutorhub/core/exceptions.py
"""
Domain-specific exceptions for the tutoring marketplace.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the caller identity is missing."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class SlotTakenException(ConflictException):
    """Raised when a reservation loses the race for a teacher's time."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available, please pick another slot",
            code="SLOT_TAKEN",
            details=details or {},
        )


class StateTransitionException(ConflictException):
    """Raised when an entity is asked to move to a state it cannot reach."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move {entity} from {current} to {target}",
            code="INVALID_STATE_TRANSITION",
            details={"entity": entity, "current_status": current, "target_status": target},
        )


class InsufficientBalanceException(BusinessRuleException):
    """Raised when a payout asks for more than the available balance."""

    def __init__(self, requested: int, available: int):
        super().__init__(
            message="Requested payout exceeds available balance",
            code="INSUFFICIENT_BALANCE",
            details={"requested_amount": requested, "available_amount": available},
        )


class BelowMinimumPayoutException(BusinessRuleException):
    """Raised when a payout is smaller than the configured minimum."""

    def __init__(self, requested: int, minimum: int):
        super().__init__(
            message=f"Minimum payout amount is {minimum}",
            code="BELOW_MINIMUM_PAYOUT",
            details={"requested_amount": requested, "minimum_amount": minimum},
        )


class AvailabilityOverlapException(ConflictException):
    """Raised when an availability rule overlaps with an existing rule."""

    def __init__(
        self,
        day: str,
        new_range: str,
        conflicting_range: str,
    ):
        super().__init__(
            message=f"Overlapping rule on {day}: {new_range} conflicts with {conflicting_range}",
            code="AVAILABILITY_OVERLAP",
            details={
                "day": day,
                "new_range": new_range,
                "conflicting_range": conflicting_range,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class LockUnavailableException(RepositoryException):
    """Raised when a row lock cannot be taken without waiting."""
