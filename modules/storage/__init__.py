from .report_store import RedisReportStore
from .settings import ReportStoreSettings

__all__ = [
    "RedisReportStore",
    "ReportStoreSettings",
]
