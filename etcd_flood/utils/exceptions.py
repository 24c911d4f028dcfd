"""
Exception hierarchy for the etcd flood harness.

Every error carries a numeric code and a free-form details dict so that a
failure can be localized (node index, version, address) from the message
alone, without re-running with extra logging.
"""

from typing import Any, Dict, Optional


class ErrorCodes:
    """Numeric error codes grouped by failure class"""

    # Configuration (1xxx)
    CONFIG_INVALID = 1001
    UNKNOWN_VERSION = 1002

    # Setup (2xxx)
    BINARY_MISSING = 2001
    PROVISION_FAILED = 2002
    DATA_DIR_FAILED = 2003

    # Launch / liveness (3xxx)
    LAUNCH_FAILED = 3001
    LIVENESS_TIMEOUT = 3002

    # Verification (4xxx)
    VERIFICATION_FAILED = 4001
    NOT_A_DIRECTORY = 4002

    # Teardown (5xxx)
    TEARDOWN_FAILED = 5001


class EtcdFloodError(Exception):
    """Base exception class for the etcd flood harness"""

    default_code: Optional[int] = None

    def __init__(self, message: str, code: Optional[int] = None, **details: Any):
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details: Dict[str, Any] = details
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.code is not None:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": dict(self.details),
        }


class ConfigurationError(EtcdFloodError):
    """Invalid or unreadable run configuration"""
    default_code = ErrorCodes.CONFIG_INVALID


class UnknownVersionError(ConfigurationError):
    """Protocol version tag outside the supported set"""
    default_code = ErrorCodes.UNKNOWN_VERSION


class SetupError(EtcdFloodError):
    """Binary missing, provisioning failed or scratch directory unusable"""
    default_code = ErrorCodes.BINARY_MISSING


class LaunchError(EtcdFloodError):
    """A node process could not be started"""
    default_code = ErrorCodes.LAUNCH_FAILED


class LivenessTimeoutError(EtcdFloodError):
    """A node process started but never answered its status endpoint"""
    default_code = ErrorCodes.LIVENESS_TIMEOUT


class VerificationError(EtcdFloodError):
    """The store returned something inconsistent with what was written"""
    default_code = ErrorCodes.VERIFICATION_FAILED


class TeardownError(EtcdFloodError):
    """One or more launched processes could not be killed"""
    default_code = ErrorCodes.TEARDOWN_FAILED
