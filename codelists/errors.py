"""
Error taxonomy for codelist evaluation
Provides consistent exception classes, technical details for logging and
user-friendly messages for whatever boundary layer sits in front of the core
"""

import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Error categories for better classification"""
    VALIDATION = "validation"
    COLLABORATOR = "collaborator"
    CANCELLED = "cancelled"
    SYSTEM = "system"


@dataclass
class ErrorContext:
    """Context information for errors"""
    operation: str
    leaf: Optional[str] = None
    path: Optional[str] = None


class CodelistError(Exception):
    """Base exception class for codelist evaluation"""

    def __init__(self,
                 message: str,
                 category: ErrorCategory = ErrorCategory.SYSTEM,
                 context: Optional[ErrorContext] = None,
                 original_exception: Optional[BaseException] = None):
        self.message = message
        self.category = category
        self.context = context
        self.original_exception = original_exception
        super().__init__(self.message)

    def get_user_friendly_message(self) -> str:
        """Get a user-friendly version of the error message"""
        if self.category == ErrorCategory.VALIDATION:
            return f"invalid parameters: {self.message}"
        friendly_messages = {
            ErrorCategory.COLLABORATOR: "The terminology service could not complete the request. Please try again later.",
            ErrorCategory.CANCELLED: "The codelist evaluation was cancelled before it completed.",
            ErrorCategory.SYSTEM: "A system error occurred. Please try again or contact support.",
        }
        return friendly_messages.get(self.category, self.message)

    def get_technical_details(self) -> Dict[str, Any]:
        """Get technical details for logging"""
        details = {
            'message': self.message,
            'category': self.category.value,
        }

        if self.context:
            details['context'] = {
                'operation': self.context.operation,
                'leaf': self.context.leaf,
                'path': self.context.path,
            }

        if self.original_exception:
            details['original_exception'] = {
                'type': type(self.original_exception).__name__,
                'message': str(self.original_exception),
                'traceback': ''.join(traceback.format_exception(
                    type(self.original_exception),
                    self.original_exception,
                    self.original_exception.__traceback__,
                )),
            }

        return details


class ValidationError(CodelistError):
    """A malformed specification, detected before any collaborator call"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        self.path = path
        if path and 'context' not in kwargs:
            kwargs['context'] = ErrorContext(operation="parse", path=path)
        super().__init__(
            message=f"{message} (at {path})" if path else message,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )


class CollaboratorError(CodelistError):
    """A terminology or drug service failure, wrapped with the leaf that triggered it"""

    def __init__(self, message: str, leaf: Optional[str] = None, **kwargs):
        self.leaf = leaf
        if 'context' not in kwargs:
            kwargs['context'] = ErrorContext(operation="evaluate", leaf=leaf)
        super().__init__(
            message=message,
            category=ErrorCategory.COLLABORATOR,
            **kwargs
        )


class TerminologyServerError(CodelistError):
    """Raised by remote collaborator clients once their own retry policy is exhausted"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 url: Optional[str] = None, **kwargs):
        self.status_code = status_code
        self.url = url
        super().__init__(
            message=message,
            category=ErrorCategory.COLLABORATOR,
            **kwargs
        )

    def get_technical_details(self) -> Dict[str, Any]:
        details = super().get_technical_details()
        details.update({
            'status_code': self.status_code,
            'url': self.url,
        })
        return details


class EvaluationCancelled(CodelistError):
    """Evaluation was cancelled or timed out; partial results are discarded"""

    def __init__(self, message: str = "Evaluation cancelled", **kwargs):
        super().__init__(
            message=message,
            category=ErrorCategory.CANCELLED,
            **kwargs
        )


def http_status_for(error: BaseException) -> int:
    """Map an exception to the status a boundary layer should return."""
    if isinstance(error, ValidationError):
        return 400
    return 500
