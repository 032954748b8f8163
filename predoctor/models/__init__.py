from .base import Base
from .error_code import ErrorCode
from .subscription_plan import SubscriptionPlan
from .hospital import Hospital
from .user import User
from .doctor import Doctor
from .report import Report
from .usage_log import AiUsageLog
from .system_settings import SystemSettings

__all__ = [
    "Base",
    "ErrorCode",
    "SubscriptionPlan",
    "Hospital",
    "User",
    "Doctor",
    "Report",
    "AiUsageLog",
    "SystemSettings",
]
