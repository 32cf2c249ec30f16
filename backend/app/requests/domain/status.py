import enum


class RequestStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_HM_APPROVAL = "pending_hm_approval"
    PENDING_QS_APPROVAL = "pending_qs_approval"
    PENDING_QM_APPROVAL = "pending_qm_approval"
    PENDING_PA_APPROVAL = "pending_pa_approval"
    PENDING_FA_APPROVAL = "pending_fa_approval"
    PENDING_PURCHASE = "pending_purchase"
    PENDING_PM_APPROVAL = "pending_pm_approval"
    PENDING_INVOICE = "pending_invoice"
    PENDING_AM_APPROVAL = "pending_am_approval"
    PENDING_BANK_ROUNDS = "pending_bank_rounds"
    COMPLETED = "completed"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.REJECTED})


class HistoryAction:
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    RETURNED_FOR_MODIFICATION = "Returned for Modification"
    RESUBMITTED = "Resubmitted"
    MARKED_AS_PURCHASED = "Marked as Purchased"
    PROCESSED_INVOICE = "Processed Invoice"
    BANK_ROUND_COMPLETED = "Bank Round Completed"
