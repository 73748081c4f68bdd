"""
Upload session data models for internal use.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from relay.core.exceptions import ValidationError
from relay_schemas.upload import (
    ErrorMessage,
    ProgressMessage,
    SuccessMessage,
    UploadState,
)


@dataclass(frozen=True)
class UploadRequest:
    """An accepted relay request. Both fields are non-empty."""

    remote_url: str
    object_name: str

    @classmethod
    def create(cls, remote_url: Optional[str], object_name: Optional[str]) -> "UploadRequest":
        """
        Validate raw input and build a request.

        Args:
            remote_url: URL of the file to relay
            object_name: Key the object is stored under (used verbatim)

        Returns:
            New UploadRequest instance

        Raises:
            ValidationError: If either field is missing or blank
        """
        missing = []
        if not remote_url or not remote_url.strip():
            missing.append("remoteUrl")
        if not object_name or not object_name.strip():
            missing.append("customName")

        if missing:
            raise ValidationError(", ".join(missing) + " required")

        return cls(remote_url=remote_url.strip(), object_name=object_name)


@dataclass
class UploadSession:
    """Live state of one relay request. Never shared between requests."""

    object_name: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    state: UploadState = UploadState.IDLE
    content_type: Optional[str] = None

    # 0 when the remote source does not declare a length
    total_size: int = 0
    bytes_acknowledged: int = 0

    started_at: datetime = field(default_factory=datetime.utcnow)
    error: Optional[str] = None
    link: Optional[str] = None

    def transition(self, state: UploadState) -> None:
        """Move to the next state. Terminal states are final."""
        if self.is_terminal:
            raise RuntimeError(f"Session {self.session_id} already {self.state.value}")
        self.state = state

    @property
    def is_terminal(self) -> bool:
        return self.state in (UploadState.SUCCEEDED, UploadState.FAILED)

    def acknowledge(self, loaded: int) -> None:
        """Record cumulative bytes confirmed by the store."""
        if loaded < self.bytes_acknowledged:
            return
        if self.total_size > 0 and loaded > self.total_size:
            loaded = self.total_size
        self.bytes_acknowledged = loaded

    def percentage(self) -> Optional[int]:
        """
        Upload progress as an integer 0-100.

        Returns:
            Rounded percentage, or None when the total size is unknown
        """
        if self.total_size <= 0:
            return None
        # Round half up on integers
        value = (self.bytes_acknowledged * 200 + self.total_size) // (2 * self.total_size)
        return max(0, min(100, value))

    def elapsed_seconds(self) -> float:
        return (datetime.utcnow() - self.started_at).total_seconds()


@dataclass(frozen=True)
class ProgressEvent:
    """Intermediate stream record."""

    percentage: int

    def to_record(self) -> Dict[str, Any]:
        return ProgressMessage(progress=self.percentage).model_dump()


@dataclass(frozen=True)
class UploadOutcome:
    """Terminal stream record: either a public link or an error message."""

    link: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, link: str) -> "UploadOutcome":
        return cls(link=link)

    @classmethod
    def failure(cls, error: str) -> "UploadOutcome":
        return cls(error=error)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_record(self) -> Dict[str, Any]:
        if self.succeeded:
            return SuccessMessage(link=self.link).model_dump()
        return ErrorMessage(error=self.error).model_dump()
