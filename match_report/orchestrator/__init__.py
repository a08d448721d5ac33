from .generator import ReportGenerator, ReportPipeline
from .progress import ProgressStage, ProgressTracker, ProgressUpdate

__all__ = ["ProgressStage", "ProgressTracker", "ProgressUpdate", "ReportGenerator", "ReportPipeline"]
