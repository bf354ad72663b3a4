"""Weekly agent productivity scores."""

from .models import AgentScore, week_bounds, week_start_for
from .repository import AgentScoreRepository
from .scorer import ProductivityScorer

__all__ = ["AgentScore", "AgentScoreRepository", "ProductivityScorer", "week_bounds", "week_start_for"]
