# src/backstage_gate/models/__init__.py
"""SQLAlchemy models for the Backstage Gate engine."""

from .analytics import FunnelEvent, FunnelEventType
from .consent import ConsentAction, ConsentEvent, ConsentSource, LedgerImmutableError
from .credential import DownloadCredential
from .gate import Gate, GateStep
from .handshake import HandshakeToken
from .submission import StepStatus, Submission, SubmissionState

__all__ = [
    "FunnelEvent", "FunnelEventType",
    "ConsentAction", "ConsentEvent", "ConsentSource", "LedgerImmutableError",
    "DownloadCredential",
    "Gate", "GateStep",
    "HandshakeToken",
    "StepStatus", "Submission", "SubmissionState",
]
