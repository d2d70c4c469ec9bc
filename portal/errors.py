"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; handlers translate them into redirects, pages or JSON.
"""


class PortalError(Exception):
    status_code = 500
    message = "an unexpected error occurred"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidCredentials(PortalError):
    # one message for unknown email, missing hash and wrong password
    status_code = 401
    message = "invalid email or password"


class DuplicateEmail(PortalError):
    status_code = 400
    message = "this email is already in use"


class AccountNotFound(PortalError):
    status_code = 404
    message = "account not found"


class Unauthorized(PortalError):
    status_code = 401
    message = "not logged in"


class Forbidden(PortalError):
    status_code = 403
    message = "forbidden"


class PersistenceFailure(PortalError):
    status_code = 500
    message = "server error"


class ValidationFailure(PortalError):
    status_code = 400
    message = "please fill in all required fields"
