"""Typed failures raised by the chat core.

Mutations raise one of these; queries degrade to empty results instead.
Each carries a message that can be shown to the user as-is.
"""

from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    code = "chat_error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ChatError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Not authenticated"


class NotAMember(ChatError):
    code = "not_a_member"
    status_code = 403
    default_message = "Not a member of this workspace"


class Forbidden(ChatError):
    code = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class NotFound(ChatError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class InvalidReference(ChatError):
    code = "invalid_reference"
    status_code = 400
    default_message = "Invalid reference"


class InvalidOperation(ChatError):
    code = "invalid_operation"
    status_code = 409
    default_message = "Invalid operation"


class RateLimited(ChatError):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many requests, slow down"

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after


class InvalidOrExpiredInvite(ChatError):
    code = "invalid_or_expired_invite"
    status_code = 410
    default_message = "Invalid or expired invite"


class AlreadyMember(ChatError):
    code = "already_member"
    status_code = 409
    default_message = "Already a member of this workspace"
