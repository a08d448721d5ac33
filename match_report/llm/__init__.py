from .client import CompletionPrompt, CompletionService, OpenAICompletionService
from .schemas import CategoryReportOutput, FinalReportOutput, SectionOutput, SignalReportOutput

__all__ = [
    "CategoryReportOutput",
    "CompletionPrompt",
    "CompletionService",
    "FinalReportOutput",
    "OpenAICompletionService",
    "SectionOutput",
    "SignalReportOutput",
]
