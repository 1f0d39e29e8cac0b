"""Error taxonomy shared by the ledger, monitor, orchestrator and API layer.

Each error carries the HTTP status the API renders it with; the exception
handlers in ``tradegpt.main`` turn any of them into ``{"error": message}``.
"""


class TradeGPTError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TradeGPTError):
    status_code = 404


class InvalidTradeUpdateError(TradeGPTError):
    status_code = 400


class DuplicateIdError(TradeGPTError):
    status_code = 409


class InvalidTransitionError(TradeGPTError):
    status_code = 409


class ConfigurationError(TradeGPTError):
    status_code = 500


class TransactionBuildError(TradeGPTError):
    status_code = 500


class ExternalFetchError(TradeGPTError):
    status_code = 502


class TransactionRevertedError(TradeGPTError):
    status_code = 502


class ProviderUnavailableError(TradeGPTError):
    status_code = 503
