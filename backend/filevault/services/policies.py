"""Per-purpose upload policies, checked before any storage work happens."""
import enum
from typing import Optional

from pydantic import BaseModel

from filevault.services.exceptions import PolicyViolationError


class Visibility(str, enum.Enum):
    private = "private"
    public = "public"


class PurposePolicy(BaseModel):
    max_size: Optional[int] = None
    allowed_mime_types: Optional[list[str]] = None
    visibility: Optional[Visibility] = None


def validate_upload(
    policies: dict[str, PurposePolicy],
    purpose: str,
    size: int,
    mime_type: Optional[str],
) -> Visibility:
    """Check an upload against its purpose policy.

    Returns the visibility the file should be stored with (private unless the
    policy says otherwise). Raises PolicyViolationError on an unknown purpose,
    an oversized file, or a disallowed content type.
    """
    policy = policies.get(purpose)
    if policy is None:
        raise PolicyViolationError("Purpose not supported")
    if policy.max_size is not None and size > policy.max_size:
        raise PolicyViolationError("File size exceeds the maximum allowed size")
    if policy.allowed_mime_types is not None and mime_type not in policy.allowed_mime_types:
        raise PolicyViolationError("File type not allowed")
    return policy.visibility or Visibility.private
