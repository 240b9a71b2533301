"""
Exceptions raised by the two-factor code engine.

Every error carries a short ``reason`` slug so that routers can hand it back to
the client without leaking internals.
"""


class TwoFactorError(Exception):
    reason = "two_factor_error"

    def __init__(self, message: str = None):
        super().__init__(message or self.reason)


class InvalidSecretFormat(TwoFactorError):
    reason = "invalid_secret_format"


class MalformedCodeInput(TwoFactorError):
    reason = "malformed_code"


class PrincipalNotFound(TwoFactorError):
    reason = "principal_not_found"


class CodeNotIssued(TwoFactorError):
    reason = "code_not_issued"


class CodeExpired(TwoFactorError):
    reason = "code_expired"


class CodeAlreadyUsed(TwoFactorError):
    reason = "code_already_used"


class CodeMismatch(TwoFactorError):
    reason = "code_mismatch"


class SecretNotProvisioned(TwoFactorError):
    reason = "secret_not_provisioned"


class TwoFactorNotEnabled(TwoFactorError):
    reason = "two_factor_not_enabled"


class PersistenceFailure(TwoFactorError):
    reason = "persistence_failure"


class NotificationDispatchFailure(TwoFactorError):
    reason = "notification_dispatch_failure"
