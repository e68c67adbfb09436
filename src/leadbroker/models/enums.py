"""String enums for job lifecycle, access ledger, commissions and disputes."""

from enum import StrEnum


class Role(StrEnum):
    REQUESTER = "requester"
    PROVIDER = "provider"
    ARBITRATOR = "arbitrator"
    SYSTEM = "system"


class JobStatus(StrEnum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class JobAction(StrEnum):
    SELECT_PROVIDER = "select_provider"
    CONFIRM_WINNER = "confirm_winner"
    CONFIRM_START = "confirm_start"
    PROPOSE_FINAL_PRICE = "propose_final_price"
    ACCEPT_FINAL_PRICE = "accept_final_price"
    REJECT_FINAL_PRICE = "reject_final_price"
    AUTO_CONFIRM_FINAL_PRICE = "auto_confirm_final_price"
    OVERRIDE_FINAL_PRICE = "override_final_price"
    RAISE_DISPUTE = "raise_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"


class AccessMethod(StrEnum):
    PAID_LEAD = "paid_lead"
    CREDIT = "credit"
    SUBSCRIPTION_SLOT = "subscription_slot"


class ProviderStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class CreditTransactionType(StrEnum):
    TRIAL_ALLOCATION = "trial_allocation"
    WEEKLY_ALLOCATION = "weekly_allocation"
    DEDUCTION = "deduction"
    DISPUTE_REFUND = "dispute_refund"


class CommissionStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    WAIVED = "waived"


class SettlementOutcome(StrEnum):
    CHARGED = "charged"
    EXEMPT = "exempt"
    ALREADY_SETTLED = "already_settled"


class DisputeStatus(StrEnum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"


class DisputeType(StrEnum):
    WORK_QUALITY = "work_quality"
    JOB_CONFIRMATION = "job_confirmation"
    CREDIT_REFUND = "credit_refund"
    PROJECT_DELAY = "project_delay"
    PAYMENT_ISSUE = "payment_issue"
    OTHER = "other"


class DisputeResolution(StrEnum):
    REQUESTER_FAVOR = "requester_favor"
    PROVIDER_FAVOR = "provider_favor"
    MUTUAL_AGREEMENT = "mutual_agreement"
    CREDIT_REFUNDED = "credit_refunded"
    COMMISSION_ADJUSTED = "commission_adjusted"
    NO_ACTION = "no_action"


class FinalPriceDecisionValue(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"


class NotificationKind(StrEnum):
    ACCESS_GRANTED = "access_granted"
    WIN_CLAIMED = "win_claimed"
    PROVIDER_SELECTED = "provider_selected"
    JOB_STARTED = "job_started"
    FINAL_PRICE_PROPOSED = "final_price_proposed"
    FINAL_PRICE_REJECTED = "final_price_rejected"
    FINAL_PRICE_REMINDER = "final_price_reminder"
    JOB_COMPLETED = "job_completed"
    FINAL_PRICE_AUTO_CONFIRMED = "final_price_auto_confirmed"
    FINAL_PRICE_OVERRIDDEN = "final_price_overridden"
    COMMISSION_DUE = "commission_due"
    COMMISSION_REMINDER = "commission_reminder"
    COMMISSION_PAID = "commission_paid"
    ACCOUNT_SUSPENDED = "account_suspended"
    CREDITS_ALLOCATED = "credits_allocated"
    CREDIT_REFUNDED = "credit_refunded"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESPONSE = "dispute_response"
    DISPUTE_RESOLVED = "dispute_resolved"
