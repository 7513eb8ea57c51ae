"""Game result mappers.

Each game type owns one mapper that turns a uniform outcome in [0, 1) into a
concrete result. Mappers are pure: the same outcome and bet params always map
to the same result, which is what lets a verifier replay a round.

``validate_params`` normalises the caller's bet params before any nonce is
reserved. The normalised dict is stored with the round and fed back into
``map`` when the round is verified, so published constants (house edge,
multiplier cap, crate weights) travel with the round they were applied to.
"""

import math
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict

from provably_fair.domain.crate_distribution import CrateDistribution
from provably_fair.exceptions import InvalidBetParamsError

# Heads wins below 0.5 + COINFLIP_BIAS. A positive bias favours heads.
COINFLIP_BIAS = 0.0

# Crash curve: floor((1 - HOUSE_EDGE) / (1 - outcome), 2dp) clipped to
# [MIN_CRASH_MULTIPLIER, MAX_CRASH_MULTIPLIER].
HOUSE_EDGE = 0.01
MIN_CRASH_MULTIPLIER = Decimal("1.00")
MAX_CRASH_MULTIPLIER = 1000.0
CENT = Decimal("0.01")

# Plinko payout tables, indexed by the number of right bounces.
PLINKO_MULTIPLIERS = {
    8: {
        "low": [5.6, 2.1, 1.1, 1.0, 0.5, 1.0, 1.1, 2.1, 5.6],
        "medium": [13.0, 3.0, 1.3, 0.7, 0.4, 0.7, 1.3, 3.0, 13.0],
        "high": [29.0, 4.0, 1.5, 0.3, 0.2, 0.3, 1.5, 4.0, 29.0],
    },
    10: {
        "low": [8.9, 3.0, 1.4, 1.1, 1.0, 0.5, 1.0, 1.1, 1.4, 3.0, 8.9],
        "medium": [22.0, 5.0, 2.0, 1.4, 0.6, 0.4, 0.6, 1.4, 2.0, 5.0, 22.0],
        "high": [76.0, 10.0, 3.0, 0.9, 0.3, 0.2, 0.3, 0.9, 3.0, 10.0, 76.0],
    },
    12: {
        "low": [10.0, 3.0, 1.6, 1.4, 1.1, 1.0, 0.5, 1.0, 1.1, 1.4, 1.6, 3.0, 10.0],
        "medium": [33.0, 11.0, 4.0, 2.0, 1.1, 0.6, 0.3, 0.6, 1.1, 2.0, 4.0, 11.0, 33.0],
        "high": [170.0, 24.0, 8.1, 2.0, 0.7, 0.2, 0.2, 0.2, 0.7, 2.0, 8.1, 24.0, 170.0],
    },
    14: {
        "low": [7.1, 4.0, 1.9, 1.4, 1.3, 1.1, 1.0, 0.5, 1.0, 1.1, 1.3, 1.4, 1.9, 4.0, 7.1],
        "medium": [58.0, 15.0, 7.0, 4.0, 1.9, 1.0, 0.5, 0.2, 0.5, 1.0, 1.9, 4.0, 7.0, 15.0, 58.0],
        "high": [420.0, 56.0, 18.0, 5.0, 1.9, 0.3, 0.2, 0.2, 0.2, 0.3, 1.9, 5.0, 18.0, 56.0, 420.0],
    },
    16: {
        "low": [16.0, 9.0, 2.0, 1.4, 1.4, 1.2, 1.1, 1.0, 0.5, 1.0, 1.1, 1.2, 1.4, 1.4, 2.0, 9.0, 16.0],
        "medium": [110.0, 41.0, 10.0, 5.0, 3.0, 1.5, 1.0, 0.5, 0.3, 0.5, 1.0, 1.5, 3.0, 5.0, 10.0, 41.0, 110.0],
        "high": [1000.0, 130.0, 26.0, 9.0, 4.0, 2.0, 0.2, 0.2, 0.2, 0.2, 0.2, 2.0, 4.0, 9.0, 26.0, 130.0, 1000.0],
    },
}
PLINKO_DEFAULT_ROWS = 16
PLINKO_DEFAULT_RISK = "medium"
OUTCOME_BITS = 32


class GameType(str, Enum):
    coinflip = "coinflip"
    crash = "crash"
    crate = "crate"
    plinko = "plinko"


def _number(bet_params: Dict[str, Any], key: str) -> float:
    value = bet_params[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidBetParamsError(f"{key} must be a number, got {value!r}")
    try:
        number = float(value)
    except OverflowError:
        raise InvalidBetParamsError(f"{key} is out of range, got {value!r}")
    if not math.isfinite(number):
        raise InvalidBetParamsError(f"{key} must be finite, got {value!r}")
    return number


def _check_outcome(outcome: float) -> None:
    if not 0.0 <= outcome < 1.0:
        raise ValueError(f"outcome must be in [0, 1), got {outcome}")


class GameResultMapper:
    game_type: GameType

    def validate_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        """Return the normalised params this mapper will be applied with.

        Raises:
            InvalidBetParamsError: The params cannot be used for this game
        """
        return {}

    def replay_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        """Normalise the params of a past round for verification.

        Unlike ``validate_params`` this keeps the published constants the
        round was played with.
        """
        return self.validate_params(bet_params)

    def map(self, outcome: float, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class CoinflipMapper(GameResultMapper):
    game_type = GameType.coinflip
    sides = ("heads", "tails")

    def __init__(self, bias: float = COINFLIP_BIAS):
        self.bias = bias

    def validate_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"bias": self.bias}
        choice = bet_params.get("choice")
        if choice is not None:
            if choice not in self.sides:
                raise InvalidBetParamsError(f"choice must be heads or tails, got {choice!r}")
            params["choice"] = choice
        return params

    def replay_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        params = self.validate_params(bet_params)
        if "bias" in bet_params:
            params["bias"] = _number(bet_params, "bias")
        return params

    def map(self, outcome: float, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        _check_outcome(outcome)
        bias = bet_params.get("bias", self.bias)
        side = "heads" if outcome < 0.5 + bias else "tails"
        result: Dict[str, Any] = {"side": side}
        choice = bet_params.get("choice")
        if choice is not None:
            result["choice"] = choice
            result["won"] = side == choice
        return result


class CrashMapper(GameResultMapper):
    game_type = GameType.crash

    def __init__(self, house_edge: float = HOUSE_EDGE, max_multiplier: float = MAX_CRASH_MULTIPLIER):
        if not 0.0 <= house_edge < 1.0:
            raise ValueError(f"house edge must be in [0, 1), got {house_edge}")
        if max_multiplier < float(MIN_CRASH_MULTIPLIER):
            raise ValueError(f"max multiplier must be >= {MIN_CRASH_MULTIPLIER}, got {max_multiplier}")
        self.house_edge = house_edge
        self.max_multiplier = max_multiplier

    def validate_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "house_edge": self.house_edge,
            "max_multiplier": self.max_multiplier,
        }
        if bet_params.get("target_multiplier") is not None:
            target = _number(bet_params, "target_multiplier")
            if target <= float(MIN_CRASH_MULTIPLIER):
                raise InvalidBetParamsError(f"target multiplier must be above 1.00, got {target}")
            params["target_multiplier"] = target
        return params

    def replay_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        params = self.validate_params(bet_params)
        for key in ("house_edge", "max_multiplier"):
            if key in bet_params:
                params[key] = _number(bet_params, key)
        if not 0.0 <= params["house_edge"] < 1.0:
            raise InvalidBetParamsError(f"house edge must be in [0, 1), got {params['house_edge']}")
        if params["max_multiplier"] < float(MIN_CRASH_MULTIPLIER):
            raise InvalidBetParamsError(f"max multiplier must be >= 1.00, got {params['max_multiplier']}")
        return params

    def crash_point(self, outcome: float, house_edge: float, max_multiplier: float) -> Decimal:
        """Published crash curve, floored to cents.

        Decimal(outcome) is exact because outcomes are k / 2**32.
        """
        _check_outcome(outcome)
        raw = (Decimal(1) - Decimal(str(house_edge))) / (Decimal(1) - Decimal(outcome))
        multiplier = raw.quantize(CENT, rounding=ROUND_DOWN)
        multiplier = min(multiplier, Decimal(str(max_multiplier)).quantize(CENT, rounding=ROUND_DOWN))
        return max(multiplier, MIN_CRASH_MULTIPLIER)

    def map(self, outcome: float, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        multiplier = self.crash_point(
            outcome,
            bet_params.get("house_edge", self.house_edge),
            bet_params.get("max_multiplier", self.max_multiplier),
        )
        result: Dict[str, Any] = {"multiplier": float(multiplier)}
        target = bet_params.get("target_multiplier")
        if target is not None:
            result["target_multiplier"] = target
            result["won"] = multiplier >= Decimal(str(target))
        return result


class CrateMapper(GameResultMapper):
    game_type = GameType.crate

    def validate_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        crate_id = bet_params.get("crate_id")
        if not isinstance(crate_id, str) or not crate_id:
            raise InvalidBetParamsError(f"crate_id must be a non-empty string, got {crate_id!r}")
        if "items" not in bet_params:
            raise InvalidBetParamsError(f"no distribution supplied for crate {crate_id!r}")
        distribution = CrateDistribution(crate_id, bet_params["items"])
        return {"crate_id": crate_id, "items": distribution.as_items()}

    def map(self, outcome: float, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        distribution = CrateDistribution(bet_params["crate_id"], bet_params["items"])
        index = distribution.select_index(outcome)
        return {
            "crate_id": distribution.crate_id,
            "item_id": distribution.item_ids[index],
            "item_index": index,
        }


class PlinkoMapper(GameResultMapper):
    game_type = GameType.plinko

    def validate_params(self, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        rows = bet_params.get("rows", PLINKO_DEFAULT_ROWS)
        risk = bet_params.get("risk", PLINKO_DEFAULT_RISK)
        if isinstance(rows, bool) or rows not in PLINKO_MULTIPLIERS:
            raise InvalidBetParamsError(f"rows must be one of {sorted(PLINKO_MULTIPLIERS)}, got {rows!r}")
        if risk not in PLINKO_MULTIPLIERS[rows]:
            raise InvalidBetParamsError(f"risk must be low, medium or high, got {risk!r}")
        return {"rows": int(rows), "risk": risk}

    def map(self, outcome: float, bet_params: Dict[str, Any]) -> Dict[str, Any]:
        _check_outcome(outcome)
        rows = bet_params["rows"]
        risk = bet_params["risk"]
        # outcome * 2**32 recovers the digest prefix exactly
        bits = int(outcome * 2 ** OUTCOME_BITS)
        path = [(bits >> (OUTCOME_BITS - 1 - row)) & 1 for row in range(rows)]
        bucket = sum(path)
        return {
            "path": path,
            "bucket": bucket,
            "multiplier": PLINKO_MULTIPLIERS[rows][risk][bucket],
        }


def build_mappers(
    house_edge: float = HOUSE_EDGE,
    max_crash_multiplier: float = MAX_CRASH_MULTIPLIER,
    coinflip_bias: float = COINFLIP_BIAS,
) -> Dict[GameType, GameResultMapper]:
    mappers = [
        CoinflipMapper(coinflip_bias),
        CrashMapper(house_edge, max_crash_multiplier),
        CrateMapper(),
        PlinkoMapper(),
    ]
    return {mapper.game_type: mapper for mapper in mappers}
