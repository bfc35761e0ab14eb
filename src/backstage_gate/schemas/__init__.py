"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .analytics import FunnelCounts, FunnelRatios, FunnelReport
from .common import Attribution, ErrorResponse
from .consent import ConsentEntry, ConsentEventCreate, ConsentEventResponse, ConsentTimelineResponse
from .credential import CredentialResponse, RedeemResponse
from .gate import GateCreate, GateOwnerView, GatePublic, GateUpdate, GateViewQuery
from .submission import (
    SubmissionCreate,
    SubmissionCreated,
    SubmissionOwnerView,
    SubmissionPage,
    SubmissionStatusResponse,
)
from .verification import (
    VerificationBegin,
    VerificationBeginResponse,
    VerificationCallback,
    VerificationCallbackResponse,
)

__all__ = [
    "FunnelCounts", "FunnelRatios", "FunnelReport",
    "Attribution", "ErrorResponse",
    "ConsentEntry", "ConsentEventCreate", "ConsentEventResponse", "ConsentTimelineResponse",
    "CredentialResponse", "RedeemResponse",
    "GateCreate", "GateOwnerView", "GatePublic", "GateUpdate", "GateViewQuery",
    "SubmissionCreate", "SubmissionCreated", "SubmissionOwnerView", "SubmissionPage",
    "SubmissionStatusResponse",
    "VerificationBegin", "VerificationBeginResponse",
    "VerificationCallback", "VerificationCallbackResponse",
]
