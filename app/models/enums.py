from enum import Enum


class RoundStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PredictionOutcome(str, Enum):
    PENDING = "pending"
    INCORRECT = "incorrect"
    CORRECT_RESULT = "correct_result"
    EXACT_SCORE = "exact_score"


class LeagueMemberStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PrizeType(str, Enum):
    ROUND = "round"
    MONTHLY = "monthly"
    OVERALL = "overall"
    MOST_EXACT_SCORES = "most_exact_scores"
