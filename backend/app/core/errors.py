"""Error taxonomy for the payments API.

    AppError (base, carries status code + caller-safe message)
    ├── ValidationError        400  missing/malformed request fields
    ├── AuthError              401  missing/invalid bearer token
    ├── ForbiddenError         403  caller does not own the resource
    ├── SignatureMismatch      400  security rejection, logged apart from validation
    ├── NotFoundError          404  reminder absent after a valid signature
    ├── GatewayError           500  Razorpay call failed
    ├── PersistenceError       500  Firestore unreachable / write failed
    ├── NotConfiguredError     500  credentials missing at startup
    └── MalformedPayloadError  500  signed webhook body is not valid JSON

``message`` is what the caller sees. The underlying cause travels as
``__cause__`` and is only logged.
"""


class AppError(Exception):
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    default_message = "Invalid token"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Unauthorized"


class SignatureMismatch(AppError):
    status_code = 400
    default_message = "Invalid signature"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class GatewayError(AppError):
    default_message = "Payment gateway request failed"


class PersistenceError(AppError):
    default_message = "Database operation failed"


class NotConfiguredError(AppError):
    default_message = "Service is not configured on server"


class MalformedPayloadError(AppError):
    default_message = "Malformed payload"
