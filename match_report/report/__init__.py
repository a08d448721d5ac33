"""Report blueprint, prompt data views, LLM chains and rendering."""

from .blueprint import REPORT_BLUEPRINT, Blueprint, CategoryDefinition, SignalDefinition, SignalTask

__all__ = ["REPORT_BLUEPRINT", "Blueprint", "CategoryDefinition", "SignalDefinition", "SignalTask"]
