"""Error taxonomy shared by the flow, orchestration and persistence layers."""
from typing import Optional


class VaaniError(Exception):
    """Base class for every failure the core reports on purpose."""


class ContractError(VaaniError):
    """Caller-supplied input does not match a flow's input contract.

    Raised before any prompt is composed, so the model is never called.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ModelContractViolation(VaaniError):
    """The model answered, but its answer does not fit the output contract.

    Not retried: a mismatch points at the prompt or the model, not the network.
    """

    def __init__(self, message: str, flow: Optional[str] = None, raw: Optional[str] = None):
        super().__init__(message)
        self.flow = flow
        self.raw = raw


class TransportError(VaaniError):
    """Timeout, connection failure, non-2xx status or unreadable envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(VaaniError):
    """A document store read or write failed."""


def http_status(error: VaaniError) -> int:
    """Status code the HTTP layer answers with for a given failure."""
    if isinstance(error, ContractError):
        return 400
    if isinstance(error, (ModelContractViolation, TransportError)):
        return 502
    if isinstance(error, PersistenceError):
        return 503
    return 500


def public_message(error: VaaniError) -> str:
    """Client-safe description. Raw model output is never included."""
    if isinstance(error, ContractError):
        return str(error)
    if isinstance(error, ModelContractViolation):
        return "The model returned an unexpected response"
    if isinstance(error, TransportError):
        return "Model API error"
    if isinstance(error, PersistenceError):
        return "Storage unavailable"
    return "Internal error"
