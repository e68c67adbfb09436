"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from leadbroker.db.models.provider import ProviderRow, CreditTransactionRow
from leadbroker.db.models.job import JobRow
from leadbroker.db.models.access_grant import AccessGrantRow
from leadbroker.db.models.commission import CommissionRecordRow
from leadbroker.db.models.dispute import DisputeRow, DisputeResponseRow
from leadbroker.db.models.notification import NotificationRow, PlatformSettingRow

__all__ = [
    "ProviderRow",
    "CreditTransactionRow",
    "JobRow",
    "AccessGrantRow",
    "CommissionRecordRow",
    "DisputeRow",
    "DisputeResponseRow",
    "NotificationRow",
    "PlatformSettingRow",
]
