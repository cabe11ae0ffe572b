"""
annotation_tool.core.exceptions - Custom exception types

Validation problems are not exceptions: Track.validate() returns them as
messages. These types cover the failures that abort an operation.
"""

from typing import Any, Optional


class AnnotationToolError(Exception):
    """Base exception for all annotation tool errors."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class TrackConstructionError(AnnotationToolError):
    """
    A Track could not be created.

    Examples:
        - Missing 'name' attribute
        - Unknown attribute in the initial attribute set
        - Annotations fetch failed while constructing a persisted track
    """
    pass


class TransportError(AnnotationToolError):
    """
    Persistence transport errors.

    Examples:
        - Backend returned a non 2xx status
        - Network failure
        - Local database unavailable
    """

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: Optional[int] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.url:
            parts.insert(0, f"[{self.url}]")
        if self.status_code:
            parts.append(f"(Status: {self.status_code})")
        if self.details:
            parts.append(f"| Details: {self.details}")
        return " ".join(parts)
