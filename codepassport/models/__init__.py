"""ORM models."""

from codepassport.models.base import Base
from codepassport.models.scan_job import ScanJob, ScanStatus

__all__ = ["Base", "ScanJob", "ScanStatus"]
