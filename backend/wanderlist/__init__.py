"""
wanderlist: gamification core for the travel backend.

Event submission, rule evaluation and progress queries run in-process;
see ``wanderlist.services.gamification.GamificationService``. Processes
start the engine with ``init_gamification``.
"""

__version__ = "0.1.0"

from .services.gamification import GamificationService, GamificationAdminService
from .bootstrap import init_gamification

__all__ = ["GamificationService", "GamificationAdminService", "init_gamification", "__version__"]
