"""Domain errors raised by the service layer.

Services never raise ``HTTPException``; each error carries the HTTP status it
maps to and ``houseparty.main`` renders it as ``{"success": false, "error": ...}``.
"""

from fastapi import status


class ServiceError(ValueError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ServiceError):
    default_message = "Invalid request"


class Conflict(ServiceError):
    default_message = "Resource already exists"


class AuthenticationFailed(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authorized to access this route"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed to access this resource"


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class VideoServiceUnavailable(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Video service not properly configured"


class InvalidCredentials(AuthenticationFailed):
    default_message = "Invalid credentials"


class InvalidCode(ValidationFailed):
    default_message = "Invalid or expired OTP"


class PartyFull(ServiceError):
    default_message = "Party is full"


class PartyInactive(ServiceError):
    default_message = "Party is no longer active"


class NotInParty(ServiceError):
    default_message = "Not in party"


class NotAMember(Forbidden):
    default_message = "You must be in the party to invite others"


class AlreadyFriends(Conflict):
    default_message = "Already friends with this user"


class AlreadyPending(Conflict):
    default_message = "Friend request already sent"


class AlreadyResolved(Conflict):
    default_message = "Invitation already responded to"
