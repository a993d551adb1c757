from typing import Optional

class TaskTokenError(Exception):
    """ Base class for all errors raised while handling task tokens """
    def __init__(self, message: str, operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        super().__init__(f"{operation}: {message}" if operation else message)

# VALIDATION EXCEPTIONS

class ValidationError(TaskTokenError):
    """ This exception is raised when a precondition fails before any collaborator is contacted """

class MissingDescriptionError(ValidationError):
    """ This exception is raised when a task is created without a description """
    def __init__(self, operation: str = "create_task"):
        super().__init__("Enter a task to complete!", operation)

class InvalidAmountError(ValidationError):
    """ This exception is raised when the amount locked behind a task is missing or too small """

class IncompleteTaskDataError(ValidationError):
    """ This exception is raised when a task cannot be redeemed because its token data is missing """
    def __init__(self, message: str = "Task data is incomplete or undefined.", operation: str = "complete_task"):
        super().__init__(message, operation)

# CRYPTO AND SCRIPT EXCEPTIONS

class CryptoError(TaskTokenError):
    """ This exception is raised when encryption, decryption or signing fails """

class ScriptError(TaskTokenError):
    """ This exception is raised when a locking or unlocking script is malformed """

# LEDGER EXCEPTIONS

class LedgerError(TaskTokenError):
    """ This exception is raised when the ledger rejects an action """

class RedemptionInProgressError(LedgerError):
    """ This exception is raised when the same token is already being redeemed """
    def __init__(self, txid: str, output_index: int):
        super().__init__(f"Token {txid}.{output_index} is already being redeemed", "complete_task")

class IdentityUnavailableError(TaskTokenError):
    """ This exception is raised when no wallet identity has been set up yet """
    code = "ERR_NO_METANET_IDENTITY"

    def __init__(self, operation: Optional[str] = None):
        super().__init__("No wallet identity is available. Run 'tasktokens setup-wallet' first.", operation)
