"""Application errors with user-facing messages and HTTP status codes."""

from datetime import UTC, datetime
from enum import Enum


class ErrorType(str, Enum):
    """Application error categories."""

    AUTHENTICATION_FAILED = "authentication_failed"
    ACCESS_DENIED = "access_denied"
    INVALID_CONFIGURATION = "invalid_configuration"
    DATABASE_ERROR = "database_error"
    PROCONNECT_ERROR = "proconnect_error"
    SESSION_EXPIRED = "session_expired"
    VALIDATION_ERROR = "validation_error"
    SERVER_ERROR = "server_error"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    EXTERNAL_SERVICE_ERROR = "external_service_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    NOT_FOUND = "not_found"
    AUTHENTICATION_ERROR = "authentication_error"
    GRIST_API_ERROR = "grist_api_error"
    COLUMN_TYPE_MISMATCH = "column_type_mismatch"
    DECRYPTION_ERROR = "decryption_error"


class ErrorKind(str, Enum):
    """Transport-level failure kinds, used to decide whether a call is retried."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    DNS = "dns"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.NETWORK,
        ErrorKind.DNS,
        ErrorKind.SERVER_ERROR,
        ErrorKind.RATE_LIMITED,
    }
)


ERROR_MESSAGES: dict[ErrorType, str] = {
    ErrorType.AUTHENTICATION_FAILED: "Échec de l'authentification. Veuillez réessayer.",
    ErrorType.ACCESS_DENIED: (
        "Accès refusé. Vous devez être un agent public pour accéder à cette ressource."
    ),
    ErrorType.INVALID_CONFIGURATION: (
        "Configuration invalide. Veuillez contacter l'administrateur."
    ),
    ErrorType.DATABASE_ERROR: "Erreur de base de données. Veuillez réessayer plus tard.",
    ErrorType.PROCONNECT_ERROR: "Erreur de connexion avec ProConnect. Veuillez réessayer.",
    ErrorType.SESSION_EXPIRED: "Votre session a expiré. Veuillez vous reconnecter.",
    ErrorType.VALIDATION_ERROR: "Données invalides. Veuillez vérifier votre saisie.",
    ErrorType.SERVER_ERROR: "Erreur serveur interne. Veuillez réessayer plus tard.",
    ErrorType.METHOD_NOT_ALLOWED: "Méthode HTTP non autorisée.",
    ErrorType.EXTERNAL_SERVICE_ERROR: (
        "Erreur de service externe. Veuillez réessayer plus tard."
    ),
    ErrorType.RATE_LIMIT_EXCEEDED: "Trop de requêtes. Veuillez patienter avant de réessayer.",
    ErrorType.NOT_FOUND: "Ressource non trouvée.",
    ErrorType.AUTHENTICATION_ERROR: (
        "Erreur d'authentification. Veuillez vérifier vos identifiants."
    ),
    ErrorType.GRIST_API_ERROR: "Erreur de l'API Grist. Veuillez vérifier votre configuration.",
    ErrorType.COLUMN_TYPE_MISMATCH: "Types de colonnes incompatibles détectés.",
    ErrorType.DECRYPTION_ERROR: (
        "La clé API enregistrée est illisible. Veuillez la saisir à nouveau."
    ),
}

STATUS_CODES: dict[ErrorType, int] = {
    ErrorType.AUTHENTICATION_FAILED: 401,
    ErrorType.ACCESS_DENIED: 403,
    ErrorType.INVALID_CONFIGURATION: 500,
    ErrorType.DATABASE_ERROR: 500,
    ErrorType.PROCONNECT_ERROR: 502,
    ErrorType.SESSION_EXPIRED: 401,
    ErrorType.VALIDATION_ERROR: 400,
    ErrorType.SERVER_ERROR: 500,
    ErrorType.METHOD_NOT_ALLOWED: 405,
    ErrorType.EXTERNAL_SERVICE_ERROR: 502,
    ErrorType.RATE_LIMIT_EXCEEDED: 429,
    ErrorType.NOT_FOUND: 404,
    ErrorType.AUTHENTICATION_ERROR: 401,
    ErrorType.GRIST_API_ERROR: 502,
    ErrorType.COLUMN_TYPE_MISMATCH: 400,
    ErrorType.DECRYPTION_ERROR: 500,
}


class AppError(Exception):
    """Base class for application errors.

    The user-facing ``message`` defaults to the French message of the error
    type; ``details`` holds technical information that is only exposed in
    development. ``kind`` optionally classifies transport failures so that
    retry logic does not have to inspect message text.
    """

    error_type: ErrorType = ErrorType.SERVER_ERROR

    def __init__(
        self,
        error_type: ErrorType | None = None,
        details: str | None = None,
        message: str | None = None,
        kind: ErrorKind | None = None,
    ):
        self.type = error_type or self.error_type
        self.message = message or ERROR_MESSAGES[self.type]
        self.details = details
        self.kind = kind
        self.status_code = STATUS_CODES[self.type]
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message

    def to_dict(self, request_id: str | None = None, include_details: bool = False) -> dict:
        """Serialize the error for a JSON response body."""
        body: dict = {
            "error": {
                "type": self.type.value,
                "message": self.message,
                "timestamp": self.timestamp,
                "requestId": request_id,
            }
        }
        if include_details and self.details:
            body["details"] = self.details
        return body


class CategorizedError(AppError):
    """AppError whose type is fixed by the subclass; ``details`` comes first."""

    def __init__(
        self,
        details: str | None = None,
        message: str | None = None,
        kind: ErrorKind | None = None,
        error_type: ErrorType | None = None,
    ):
        super().__init__(error_type or self.error_type, details, message, kind)


class ConfigurationError(CategorizedError):
    """Missing or invalid configuration. Fatal, never retried."""

    error_type = ErrorType.INVALID_CONFIGURATION


class DecryptionError(CategorizedError):
    """Stored ciphertext could not be decrypted (corrupted, truncated or wrong key)."""

    error_type = ErrorType.DECRYPTION_ERROR


class ProConnectError(CategorizedError):
    """Failure while talking to ProConnect or verifying its tokens."""

    error_type = ErrorType.PROCONNECT_ERROR


class GristApiError(CategorizedError):
    """Failure while calling the Grist API."""

    error_type = ErrorType.GRIST_API_ERROR


class RateLimitExceededError(CategorizedError):
    """Raised by API handlers when a rate limiter denies a request."""

    error_type = ErrorType.RATE_LIMIT_EXCEEDED

    def __init__(self, retry_after: int | None = None, details: str | None = None):
        self.retry_after = retry_after
        message = None
        if retry_after is not None:
            message = f"Trop de requêtes. Réessayez dans {retry_after} secondes."
        super().__init__(details=details, message=message, kind=ErrorKind.RATE_LIMITED)
