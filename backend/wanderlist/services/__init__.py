from .gamification import GamificationService, GamificationAdminService

__all__ = ["GamificationService", "GamificationAdminService"]
