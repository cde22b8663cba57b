"""Workers package: the analysis job controller and its schedulers."""

from .analysis_controller import AnalysisJobController, StateSubscription  # noqa: F401
from .scheduling import AsyncioScheduler, Scheduler, VirtualScheduler  # noqa: F401
