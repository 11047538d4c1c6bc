"""Typed failures raised by generation tiers.

Each error carries the category reported back to the caller. Errors coming
from the remote generation service keep the service's own error_type,
stage and troubleshooting hints untouched.
"""

from typing import Optional


class QuoteGenerationError(Exception):
    category = "render_error"

    def __init__(self, message: str, *, category: Optional[str] = None,
                 stage: str = "", troubleshooting: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if category:
            self.category = category
        self.stage = stage
        self.troubleshooting = troubleshooting

    def as_dict(self) -> dict:
        d = {"error_type": self.category, "error": self.message, "stage": self.stage}
        if self.troubleshooting:
            d["troubleshooting"] = self.troubleshooting
        return d


class RemoteServiceError(QuoteGenerationError):
    """Remote service unreachable, non-2xx, or reported success=false."""
    category = "network_error"


class RemoteTimeout(RemoteServiceError):
    category = "timeout_error"


class TemplateError(QuoteGenerationError):
    """Background asset unreadable, corrupt or of an unknown format."""
    category = "template_error"


class RenderError(QuoteGenerationError):
    category = "render_error"


class RemoteRejected(RemoteServiceError):
    """The service answered but reported success=false. Not retried."""
