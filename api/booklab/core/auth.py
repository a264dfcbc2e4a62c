from dataclasses import dataclass
from enum import Enum


class PrincipalType(str, Enum):
    ANONYMOUS = "anonymous"
    USER = "user"


class Role(str, Enum):
    EDITOR = "editor"
    ADMIN = "admin"


@dataclass(slots=True, frozen=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    actor_id: str | None = None
    slug: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.principal_type is PrincipalType.ANONYMOUS or not self.actor_id

    def require_authenticated(self) -> str:
        if self.principal_type is PrincipalType.ANONYMOUS or not self.actor_id:
            raise AuthenticationRequiredError("sign in required")
        return self.actor_id


ANONYMOUS = Principal(principal_type=PrincipalType.ANONYMOUS, subject="anonymous")


class AccessDeniedError(Exception):
    """Raised when a principal may not perform an action.

    Handled once by the application exception handler; routes and services
    let it propagate.
    """

    reason = "forbidden"
    default_message = "you are not authorized to perform this action"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class AuthenticationRequiredError(AccessDeniedError):
    reason = "authentication_required"
    default_message = "sign in required"


class ForbiddenError(AccessDeniedError):
    reason = "forbidden"
