import copy
import json
import os

CONFIG_PATH = "reconciler_config.json"

DEFAULT_CONFIG = {
    "risk": {
        # Field names looked up in the per-source statistics for each signal
        "signals": {
            "balance": "balance",
            "checks": "checks",
            "deposits": "deposits",
            "nsf": "nsf",
        },
        "weights": {"balance": 5, "checks": 5, "deposits": 3, "nsf": 1},
        # Tier value for each threshold, checked from the top down; "base" applies otherwise
        "tiers": {
            "balance": {"three_std": 5, "mean": 3, "base": 1},
            "checks": {"three_std": 5, "two_std": 4, "mean": 2, "base": 1},
            "deposits": {"three_std": 5, "two_std": 2, "base": 1},
            "nsf": {"three_std": 5, "base": 1},
        },
    },
    "recalc": {
        "report_formula_errors": False,
    },
}


def load_config(path=None):
    """
    Load the JSON configuration and merge it over the defaults.

    Each top-level section of the file is merged key by key into the matching
    default section, so a file only needs the values it overrides.

    Args:
        path: Config file path. Defaults to CONFIG_PATH in the working directory.

    Returns:
        A new config dict.

    Raises:
        ValueError: If the file exists but is not valid JSON.
    """
    path = path or CONFIG_PATH
    merged = copy.deepcopy(DEFAULT_CONFIG)
    if not os.path.exists(path):
        return merged

    with open(path, "r", encoding="utf-8") as f:
        try:
            cfg = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid config file {path}: {e}") from e

    for section, values in cfg.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            _merge_section(merged[section], values)
        else:
            merged[section] = values
    print(f"[CONFIG] Loaded overrides from {path}: {sorted(cfg)}")
    return merged


def _merge_section(target, overrides):
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_section(target[key], value)
        else:
            target[key] = value


def save_config(cfg, path=None):
    with open(path or CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(cfg, f, indent=2)
