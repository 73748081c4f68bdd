"""Custom exceptions for the relay pipeline."""


class RelayError(Exception):
    """Base exception for the relay pipeline."""

    # Prefix shown to the client so the failing stage is recognisable
    category = "Relay failed"

    def to_message(self) -> str:
        """Human-readable message for the terminal stream record."""
        detail = str(self)
        return f"{self.category}: {detail}" if detail else self.category


class ValidationError(RelayError):
    """Exception raised when a request is missing required fields."""
    category = "Missing info"


class FetchError(RelayError):
    """Exception raised when the remote source cannot be read."""
    category = "Cannot fetch remote url"


class UploadError(RelayError):
    """Exception raised when writing to the object store fails."""
    category = "Upload failed"
