class RoleGateError(Exception):
    """Base exception for RoleGate."""

    pass


class VerificationError(RoleGateError):
    """Raised when an inbound webhook cannot be trusted or parsed."""

    reason = "verification_failed"


class MissingSecretError(VerificationError):
    """Raised when no webhook signing secret is configured."""

    reason = "missing_secret"


class BadSignatureError(VerificationError):
    """Raised when the signature header is absent or does not match the body."""

    reason = "bad_signature"


class InvalidPayloadError(VerificationError):
    """Raised when a correctly signed body is not a valid event envelope."""

    reason = "invalid_payload"


class MappingNotFoundError(RoleGateError):
    """Raised when a price or plan has no configured entitlement."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No entitlement mapping for '{key}'")


class DirectoryError(RoleGateError):
    """Raised when the Discord directory cannot complete an operation."""

    pass


class DirectoryOperationError(DirectoryError):
    """Raised when Discord rejects a role grant or revoke."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Discord {operation} failed: {detail}")


class PersistenceError(RoleGateError):
    """Raised when the subscription ledger cannot be written."""

    pass
