from core.exceptions.base import (
    CustomException,
    NotFoundException,
    ConflictException,
    ValidationException,
)

__all__ = [
    "CustomException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
]
