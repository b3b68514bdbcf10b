"""
TruthScore: reputation scores for prediction-market traders.

Three scoring families, exposed as named ``ScoringStrategy`` instances:

- ``wilson``: odds-based Wilson formula (skill + activity + PnL bonus, 0-1300).
- ``wilson-points``: same, with the bonus driven by platform points.
- ``indexer``: the on-chain indexer's volume-heavy formula (0-10000).
- ``indexer-platform-free``: indexer formula without the multi-platform bonus.
- ``edge-confidence``: edge x confidence with a recency bonus (0-1300).

Callers always pick a strategy by name; there is no implicit default.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

WILSON_Z = 1.96

# Odds-based Wilson formula
MAX_SCORE = 1300
MIN_TRADES = 5
FULL_SCORE_TRADES = 50
MAX_SKILL = 500
MAX_ACTIVITY = 500
MAX_BONUS = 200

# Indexer formula
INDEXER_MAX_SCORE = 10000

# Edge x confidence formula
MIN_BETS_BINARY = 30
MIN_BETS_ODDS = 20
MIN_VOLUME_ODDS = 1000
MAX_EDGE_POINTS = 500
MAX_BASE_SCORE = 1000
CONFIDENCE_MIN = 0.5
CONFIDENCE_SCALE = 200
ROI_VARIANCE_ESTIMATE = 0.25
ROI_Z_SCORE = 1.5
RECENCY_MAX_BONUS = 300
RECENCY_FULL_DAYS = 7
RECENCY_DECAY_DAYS = 90

BINARY_PLATFORMS = ("pancakeswap", "speedmarkets", "thales")

SCORE_TIERS = [
    (1100, "Legendary"),
    (900, "Diamond"),
    (650, "Platinum"),
    (400, "Gold"),
    (200, "Silver"),
]


def wilson_score_lower(wins: int, total: int, z: float = WILSON_Z) -> float:
    """Lower bound of the Wilson score interval for a binomial proportion.

    Penalizes small samples: 3 wins out of 3 gives about 0.44, not 1.0.
    Returns 0 for an empty or inconsistent sample.
    """
    if total <= 0 or wins < 0 or wins > total:
        return 0.0
    p = wins / total
    denominator = 1 + z * z / total
    center = p + z * z / (2 * total)
    spread = z * math.sqrt((p * (1 - p) + z * z / (4 * total)) / total)
    return max(0.0, (center - spread) / denominator)


def wilson_score_upper(wins: int, total: int, z: float = WILSON_Z) -> float:
    if total <= 0 or wins < 0 or wins > total:
        return 0.0
    p = wins / total
    denominator = 1 + z * z / total
    center = p + z * z / (2 * total)
    spread = z * math.sqrt((p * (1 - p) + z * z / (4 * total)) / total)
    return min(1.0, (center + spread) / denominator)


def calculate_confidence(sample_size: int) -> float:
    """0.5 at zero samples, approaching 1.0 as the sample grows."""
    if sample_size <= 0:
        return CONFIDENCE_MIN
    return CONFIDENCE_MIN + (1 - CONFIDENCE_MIN) * (1 - math.exp(-sample_size / CONFIDENCE_SCALE))


def calculate_conservative_roi(pnl: float, volume: float, trades: int) -> float:
    if volume <= 0 or trades <= 0:
        return 0.0
    return pnl / volume - ROI_Z_SCORE * math.sqrt(ROI_VARIANCE_ESTIMATE / trades)


def calculate_recency_bonus(last_trade_at: Optional[datetime], now: datetime) -> tuple[int, Optional[int]]:
    """Return ``(bonus, days_since)``; full bonus within a week, zero after 90 days."""
    if last_trade_at is None:
        return 0, None
    if last_trade_at.tzinfo is None:
        last_trade_at = last_trade_at.replace(tzinfo=timezone.utc)
    days_since = math.floor((now - last_trade_at).total_seconds() / 86400)

    if days_since <= RECENCY_FULL_DAYS:
        return RECENCY_MAX_BONUS, days_since
    if days_since >= RECENCY_DECAY_DAYS:
        return 0, days_since
    progress = (days_since - RECENCY_FULL_DAYS) / (RECENCY_DECAY_DAYS - RECENCY_FULL_DAYS)
    return round(RECENCY_MAX_BONUS * (1 - progress)), days_since


def get_market_type(platform: str) -> str:
    normalized = "".join(ch for ch in platform.lower() if ch.isalpha())
    return "binary" if any(b in normalized for b in BINARY_PLATFORMS) else "odds"


def get_score_tier(score: int) -> str:
    for threshold, tier in SCORE_TIERS:
        if score >= threshold:
            return tier
    return "Bronze"


@dataclass
class WinRateEstimate:
    win_rate: float
    is_estimated: bool = True


def estimate_win_rate_from_rank(position: int) -> WinRateEstimate:
    """Win rate (0-100) guessed from a platform leaderboard position.

    Used only where an upstream exposes rank but no win/loss record.
    """
    if position <= 100:
        rate = 75 + (100 - position) * 0.1
    elif position <= 1000:
        rate = 65 + (1000 - position) * 0.01
    elif position <= 10000:
        rate = 55 + (10000 - position) * 0.001
    else:
        rate = 50 + min(5, 50000 / position)
    return WinRateEstimate(win_rate=rate)


@dataclass
class ScoreInput:
    trades: int = 0
    wins: int = 0
    volume: float = 0.0
    pnl: float = 0.0
    points: float = 0.0
    platform: str = ""
    platform_count: int = 1
    last_trade_at: Optional[datetime] = None


@dataclass
class ScoreResult:
    score: int
    eligible: bool = True
    reason: Optional[str] = None
    breakdown: dict = field(default_factory=dict)


class ScoringStrategy(ABC):
    name: str
    max_score: int

    @abstractmethod
    def score(self, data: ScoreInput) -> ScoreResult:
        pass


class OddsWilsonStrategy(ScoringStrategy):
    max_score = MAX_SCORE

    def __init__(self, bonus_mode: str = "pnl"):
        if bonus_mode not in ("pnl", "points"):
            raise ValueError(f"Unknown bonus mode: {bonus_mode}")
        self.bonus_mode = bonus_mode
        self.name = "wilson" if bonus_mode == "pnl" else "wilson-points"

    def _bonus(self, data: ScoreInput) -> int:
        if self.bonus_mode == "points":
            raw = math.floor(data.points / 100) if data.points > 0 else 0
        else:
            raw = math.floor(math.log10(data.pnl) * 50) if data.pnl > 0 else 0
        return min(MAX_BONUS, max(0, raw))

    def score(self, data: ScoreInput) -> ScoreResult:
        if data.trades < MIN_TRADES:
            return ScoreResult(score=0, eligible=False, reason=f"Need {MIN_TRADES}+ trades (have {data.trades})")

        skill = min(MAX_SKILL, math.floor(wilson_score_lower(data.wins, data.trades) * MAX_SKILL))
        activity = 0
        if data.volume > 0:
            activity = min(MAX_ACTIVITY, max(0, math.floor(math.log10(data.volume) * 65)))
        bonus = self._bonus(data)
        multiplier = min(1.0, data.trades / FULL_SCORE_TRADES)

        total = min(MAX_SCORE, max(0, math.floor((skill + activity + bonus) * multiplier)))
        return ScoreResult(
            score=total,
            breakdown={"skill": skill, "activity": activity, "bonus": bonus, "multiplier": multiplier},
        )


class IndexerStrategy(ScoringStrategy):
    max_score = INDEXER_MAX_SCORE

    def __init__(self, platform_bonus: bool = True):
        self.platform_bonus = platform_bonus
        self.name = "indexer" if platform_bonus else "indexer-platform-free"

    def score(self, data: ScoreInput) -> ScoreResult:
        win_rate = data.wins / data.trades if data.trades > 0 else 0.0
        platforms = data.platform_count * 50 if self.platform_bonus else 0
        raw = math.floor(win_rate * 1000 + data.trades * 2 + data.volume / 10 + platforms)
        return ScoreResult(
            score=min(INDEXER_MAX_SCORE, max(0, raw)),
            breakdown={"win_rate": win_rate, "platform_bonus": platforms},
        )


class EdgeConfidenceStrategy(ScoringStrategy):
    """Edge above the fair baseline, scaled by sample-size confidence.

    Binary platforms measure edge as the Wilson lower bound above 50%;
    odds platforms use a confidence-bounded ROI.
    """

    name = "edge-confidence"
    max_score = MAX_SCORE

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock

    def score(self, data: ScoreInput) -> ScoreResult:
        market_type = get_market_type(data.platform)
        recency_bonus, days_since = calculate_recency_bonus(data.last_trade_at, self._clock())

        if market_type == "binary":
            if data.trades < MIN_BETS_BINARY:
                return ScoreResult(score=0, eligible=False, reason=f"Need {MIN_BETS_BINARY}+ bets (have {data.trades})")
            proven = wilson_score_lower(data.wins, data.trades)
            edge = max(0.0, proven - 0.5)
        else:
            if data.trades < MIN_BETS_ODDS:
                return ScoreResult(score=0, eligible=False, reason=f"Need {MIN_BETS_ODDS}+ trades (have {data.trades})")
            if data.volume < MIN_VOLUME_ODDS:
                return ScoreResult(
                    score=0, eligible=False, reason=f"Need ${MIN_VOLUME_ODDS}+ volume (have ${round(data.volume)})",
                )
            proven = calculate_conservative_roi(data.pnl, data.volume, data.trades)
            edge = max(0.0, proven)

        edge_points = min(MAX_EDGE_POINTS, round(edge * 5000))
        confidence = calculate_confidence(data.trades)
        base = min(MAX_BASE_SCORE, round(edge_points * confidence * 2))
        total = min(MAX_SCORE, base + recency_bonus)

        return ScoreResult(
            score=total,
            breakdown={
                "market_type": market_type,
                "base_score": base,
                "edge": round(edge * 1000) / 10,
                "edge_points": edge_points,
                "confidence": round(confidence * 100),
                "recency_bonus": recency_bonus,
                "days_since_last_trade": days_since,
                "proven": round(proven * 1000) / 10,
                "tier": get_score_tier(total),
            },
        )


STRATEGIES: dict[str, ScoringStrategy] = {
    s.name: s
    for s in (
        OddsWilsonStrategy("pnl"),
        OddsWilsonStrategy("points"),
        IndexerStrategy(platform_bonus=True),
        IndexerStrategy(platform_bonus=False),
        EdgeConfidenceStrategy(),
    )
}


def get_strategy(name: str) -> ScoringStrategy:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown scoring strategy: {name}") from None


def calculate_truth_score(
    trades: int,
    wins: int,
    volume: float,
    pnl: float = 0.0,
    *,
    strategy: str,
    **extra,
) -> int:
    data = ScoreInput(trades=trades, wins=wins, volume=volume, pnl=pnl, **extra)
    return get_strategy(strategy).score(data).score
