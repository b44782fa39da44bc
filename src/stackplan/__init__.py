"""stackplan - declare cloud resources as a dependency graph and synthesize them in order."""

from stackplan.core.graph import DependencyGraph
from stackplan.core.settings import StackPlanSettings, get_settings
from stackplan.core.stack import build_stack
from stackplan.core.synthesizer import Synthesizer

__all__ = [
    "DependencyGraph",
    "StackPlanSettings",
    "Synthesizer",
    "build_stack",
    "get_settings",
]
