"""
Error taxonomy for AdminRights.

Every failure that crosses the service boundary is an
:class:`AdminRightsError`.  Two attributes drive what callers do next:

``kind``
    Stable machine-readable name, echoed in HTTP error bodies.
``retry_safe``
    True when the operation *definitely did not happen* on the ledger
    (validation, identity, connection, simulation, rejected check).  False
    when the outcome is unknown (transport failure after broadcast,
    confirmation timeout) and the caller must re-query before resubmitting.

Nothing in this package retries automatically.
"""

from __future__ import annotations


class AdminRightsError(Exception):
    """Base class for all AdminRights failures."""

    kind = "error"
    retry_safe = True

    def __init__(self, message: str, *, tx_hash: str | None = None):
        super().__init__(message)
        self.message = message
        self.tx_hash = tx_hash

    def to_dict(self) -> dict:
        """HTTP error body.

        A failure never carries ``transaction_id``.  When the outcome is
        unknown the broadcast hash is exposed as ``pending_tx_hash`` so the
        caller can look the transaction up before resubmitting.
        """
        body = {
            "error": self.kind,
            "message": self.message,
            "retry_safe": self.retry_safe,
        }
        if self.tx_hash and not self.retry_safe:
            body["pending_tx_hash"] = self.tx_hash
        return body


# ── client-side: never reach the network ─────────────────────────

class ValidationError(AdminRightsError):
    kind = "validation_error"


class MalformedAmount(ValidationError):
    kind = "malformed_amount"


class MissingField(ValidationError):
    kind = "missing_field"

    def __init__(self, field_name: str):
        super().__init__(f"{field_name} is required")
        self.field_name = field_name


class InvalidOperation(ValidationError):
    kind = "invalid_operation"


class PayloadTooLarge(ValidationError):
    kind = "payload_too_large"


class IdentityError(AdminRightsError):
    kind = "identity_error"


class InvalidSecret(IdentityError):
    kind = "invalid_secret"


class DerivationFailure(IdentityError):
    kind = "derivation_failure"


# ── remote node ──────────────────────────────────────────────────

class ChainError(AdminRightsError):
    kind = "chain_error"


class ConnectionFailure(ChainError):
    """Channel could not be established (unreachable, TLS, wrong network)."""
    kind = "connection_error"


class SimulationRejected(ChainError):
    """The node refused the draft transaction; nothing was signed or sent."""
    kind = "simulation_rejected"


class SubmissionRejected(ChainError):
    """Broadcast failed.

    ``outcome_known`` is True when the node answered with a rejection code
    (the transaction was not accepted) and False when the transport broke
    after the request left this process.
    """

    kind = "submission_rejected"

    def __init__(self, message: str, *, tx_hash: str | None = None,
                 outcome_known: bool = True, code: int | None = None):
        super().__init__(message, tx_hash=tx_hash)
        self.outcome_known = outcome_known
        self.code = code

    @property
    def retry_safe(self) -> bool:  # type: ignore[override]
        return self.outcome_known


class ConfirmationTimeout(ChainError):
    """No terminal status seen before the deadline; outcome unknown."""
    kind = "confirmation_timeout"
    retry_safe = False


class NodeInternalError(ChainError):
    kind = "node_internal_error"
    retry_safe = False
