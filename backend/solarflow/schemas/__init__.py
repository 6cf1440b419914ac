from solarflow.schemas.backups import BackupRead, RestoreRead
from solarflow.schemas.contracts import (
    ContractCancel,
    ContractCreateFromQuote,
    ContractRead,
    ContractSign,
    ContractTimelineRead,
    ContractTransition,
    ContractUpdate,
    TimelineEventRead,
)
from solarflow.schemas.handovers import CommissionHoldRead, HandoverCreate, HandoverRead
from solarflow.schemas.jobs import JobRunRead, JobRunResultRead

__all__ = [
    "BackupRead",
    "CommissionHoldRead",
    "ContractCancel",
    "ContractCreateFromQuote",
    "ContractRead",
    "ContractSign",
    "ContractTimelineRead",
    "ContractTransition",
    "ContractUpdate",
    "HandoverCreate",
    "HandoverRead",
    "JobRunRead",
    "JobRunResultRead",
    "RestoreRead",
    "TimelineEventRead",
]
