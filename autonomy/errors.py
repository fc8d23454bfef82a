"""Custom exception hierarchy for the survival agent."""
from typing import Any, Dict, Optional


class AutonomyError(Exception):
    """Base exception for all agent errors."""
    code: str = "SYS_001"

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ConfigurationError(AutonomyError):
    """Configuration value missing or malformed."""
    code = "CFG_001"


class IdentityError(AutonomyError):
    """Keypair could not be loaded or created. Never includes key material."""
    code = "ID_001"


class NoCredential(AutonomyError):
    """Optional premium credential is not configured."""
    code = "CRED_001"

    def __init__(self, provider: str):
        super().__init__(f"{provider} credential not configured", {"provider": provider})
        self.provider = provider


class ProviderError(AutonomyError):
    """External data provider call failed."""
    code = "PROV_001"

    def __init__(self, message: str, provider: str = None):
        super().__init__(message, {"provider": provider})
        self.provider = provider


class UnknownBalance(AutonomyError):
    """A balance read failed; the value is unknown, not zero."""
    code = "BAL_001"


class InsufficientReserve(AutonomyError):
    """Spending would dip below the fee reserve floor."""
    code = "BAL_002"


class LedgerError(AutonomyError):
    """Solana RPC call failed."""
    code = "RPC_001"


class AccountNotFound(LedgerError):
    """The queried account does not exist on chain."""
    code = "RPC_002"

    def __init__(self, address: str):
        super().__init__(f"could not find account {address}", {"address": address})
        self.address = address


class ExecutionError(AutonomyError):
    """Base for write-path failures."""
    code = "EXEC_001"


class QuoteUnavailable(ExecutionError):
    """Aggregator returned no usable quote. No funds moved."""
    code = "EXEC_002"


class BuildFailed(ExecutionError):
    """Unsigned transaction could not be built. No funds moved."""
    code = "EXEC_003"


class SubmissionFailed(ExecutionError):
    """Broadcast attempts exhausted. No funds moved."""
    code = "EXEC_004"


class ConfirmationFailed(ExecutionError):
    """Transaction landed with an on-chain error."""
    code = "EXEC_005"

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message, {"signature": signature})
        self.signature = signature


class ConfirmationAmbiguous(ExecutionError):
    """Submitted but finality was not observed; funds may have moved."""
    code = "EXEC_006"

    def __init__(self, signature: str, reason: str = "confirmation timeout"):
        super().__init__(
            f"confirmation ambiguous for {signature}: {reason}",
            {"signature": signature, "reason": reason},
        )
        self.signature = signature
        self.reason = reason
