"""
Hyperparameter configurations for the direction ensemble members.

Every member is seeded so that a replay over the same rounds is deterministic.
"""

import copy
from typing import Any, Dict

RANDOM_FOREST_CONFIG: Dict[str, Any] = {
    "model_name": "random_forest",
    "model_class": "sklearn.ensemble.RandomForestClassifier",
    "hyperparameters": {
        "n_estimators": 100,
        "max_depth": 5,
        "random_state": 42,
        "n_jobs": 1,  # one worker process per partition already saturates the CPUs
    },
    "description": "Random forest over lookback price features",
}

XGBOOST_CONFIG: Dict[str, Any] = {
    "model_name": "xgboost",
    "model_class": "xgboost.XGBClassifier",
    "hyperparameters": {
        "n_estimators": 100,
        "max_depth": 3,
        "learning_rate": 0.1,
        "subsample": 0.8,
        "colsample_bytree": 0.8,
        "random_state": 42,
        "objective": "binary:logistic",
        "eval_metric": "logloss",
        "n_jobs": 1,
    },
    "description": "Gradient boosted trees (XGBoost)",
}

LIGHTGBM_CONFIG: Dict[str, Any] = {
    "model_name": "lightgbm",
    "model_class": "lightgbm.LGBMClassifier",
    "hyperparameters": {
        "n_estimators": 100,
        "max_depth": 3,
        "learning_rate": 0.1,
        "min_child_samples": 5,
        "random_state": 42,
        "objective": "binary",
        "verbosity": -1,
        "n_jobs": 1,
    },
    "description": "Gradient boosted trees (LightGBM)",
}

LOGISTIC_CONFIG: Dict[str, Any] = {
    "model_name": "logistic",
    "model_class": "sklearn.linear_model.LogisticRegression",
    "hyperparameters": {
        "max_iter": 1000,
        "random_state": 42,
        "solver": "lbfgs",
        "C": 1.0,
    },
    "description": "Fast linear baseline",
}

MEMBER_CONFIGS: Dict[str, Dict[str, Any]] = {
    "random_forest": RANDOM_FOREST_CONFIG,
    "xgboost": XGBOOST_CONFIG,
    "lightgbm": LIGHTGBM_CONFIG,
    "logistic": LOGISTIC_CONFIG,
}

# Members whose size is controlled by the PREDICTOR_ESTIMATORS setting
TREE_MEMBERS = ("random_forest", "xgboost", "lightgbm")


def get_member_config(name: str) -> Dict[str, Any]:
    """
    Get a deep copy of a member configuration.

    Raises:
        ValueError: If the member name is unknown
    """
    if name not in MEMBER_CONFIGS:
        raise ValueError(
            f"Unknown ensemble member '{name}'. Valid options: {list(MEMBER_CONFIGS.keys())}"
        )
    return copy.deepcopy(MEMBER_CONFIGS[name])
