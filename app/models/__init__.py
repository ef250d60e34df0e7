from .enums import RoundStatus, MatchStatus, PredictionOutcome, LeagueMemberStatus, PrizeType
from .user import User
from .session import Session
from .team import Team
from .season import Season
from .round import Round
from .match import Match
from .prediction import UserPrediction
from .round_result import RoundResult
from .league import League, LeagueMember, LeagueRoundResult, LeagueMemberStats
from .boost import BoostDefinition, LeagueBoostRule, LeagueBoostWindow, UserBoostUsage
from .prize import LeaguePrizeSetting, Winning

__all__ = [
    "RoundStatus",
    "MatchStatus",
    "PredictionOutcome",
    "LeagueMemberStatus",
    "PrizeType",
    "User",
    "Session",
    "Team",
    "Season",
    "Round",
    "Match",
    "UserPrediction",
    "RoundResult",
    "League",
    "LeagueMember",
    "LeagueRoundResult",
    "LeagueMemberStats",
    "BoostDefinition",
    "LeagueBoostRule",
    "LeagueBoostWindow",
    "UserBoostUsage",
    "LeaguePrizeSetting",
    "Winning",
]
