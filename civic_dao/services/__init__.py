from .governance_stats import GovernanceStats, GovernanceStatsService, UserStats

__all__ = ["GovernanceStats", "GovernanceStatsService", "UserStats"]
