from solarflow.models.domain import (
    AuditLog,
    Commission,
    CommissionStatus,
    Contract,
    ContractStatus,
    Handover,
    HandoverType,
    NotificationLog,
    OtpChallenge,
    Partner,
    Project,
    ProjectStatus,
    PublicSession,
    Quote,
    QuoteStatus,
    Tenant,
)
from solarflow.models.jobs import (
    TERMINAL_JOB_RUN_STATUSES,
    BackupRecord,
    BackupType,
    JobRun,
    JobRunStatus,
)

__all__ = [
    "AuditLog",
    "BackupRecord",
    "BackupType",
    "Commission",
    "CommissionStatus",
    "Contract",
    "ContractStatus",
    "Handover",
    "HandoverType",
    "JobRun",
    "JobRunStatus",
    "NotificationLog",
    "OtpChallenge",
    "Partner",
    "Project",
    "ProjectStatus",
    "PublicSession",
    "Quote",
    "QuoteStatus",
    "TERMINAL_JOB_RUN_STATUSES",
    "Tenant",
]
