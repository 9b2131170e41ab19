from .pipeline import ReportPipeline, DefaultReportPipeline
from .models import ReportConfig, ReportOutcome, BatchSummary, SlideMap

__all__ = [
    "ReportPipeline",
    "DefaultReportPipeline",
    "ReportConfig",
    "ReportOutcome",
    "BatchSummary",
    "SlideMap",
]
