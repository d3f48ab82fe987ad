"""
Analytics configuration for RP Conseil Hub.
Business thresholds used to flag the billing table plus the outlier and
leaderboard constants of the analyzers. Defaults match the values the
dashboard has always used; each one can be overridden from .env.

Usage:
    from scripts.lib.config import load_config
    config = load_config()
    config["thresholds"]["cancellation_rate_max"]   # 15.0
"""
import copy
import os
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_CONFIG: Dict[str, Any] = {
    "thresholds": {
        "referral_ratio_min": 50.0,
        "invoicing_rate_min": 90.0,
        "payment_rate_min": 90.0,
        "cancellation_rate_max": 15.0,
    },
    # Day distances at or beyond this are treated as malformed chains
    "outlier_ceiling_days": 1000,
    "leaderboard_size": 5,
    "top_promoters": 5,
    "simulator_fallback": {
        "nb_sales": 30,
        "fiche_pct": 50,
        "avg_ca_perso": 5000,
        "avg_ca_general": 15000,
    },
}

# env var -> (path in config, cast)
ENV_OVERRIDES = {
    "RP_REFERRAL_RATIO_MIN": (("thresholds", "referral_ratio_min"), float),
    "RP_INVOICING_RATE_MIN": (("thresholds", "invoicing_rate_min"), float),
    "RP_PAYMENT_RATE_MIN": (("thresholds", "payment_rate_min"), float),
    "RP_CANCELLATION_RATE_MAX": (("thresholds", "cancellation_rate_max"), float),
    "RP_OUTLIER_CEILING_DAYS": (("outlier_ceiling_days",), int),
    "RP_LEADERBOARD_SIZE": (("leaderboard_size",), int),
}


def load_config(overrides: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Build the effective analytics config.

    Args:
        overrides: Optional nested dict merged last (wins over env vars).

    Returns:
        A fresh dict; DEFAULT_CONFIG is never mutated.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    for env_var, (path, cast) in ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw in (None, ""):
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a valid %s", env_var, raw, cast.__name__)
            continue
        target = config
        for key in path[:-1]:
            target = target[key]
        target[path[-1]] = value

    if overrides:
        _deep_merge(config, overrides)

    return config


def _deep_merge(base: Dict[str, Any], extra: Dict[str, Any]) -> None:
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
