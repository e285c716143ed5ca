"""
Models package for direction prediction.

Provides:
- BasePredictor: Predictor contract consumed by the prediction engine
- EnsemblePredictor: Soft-voting ensemble of scikit-learn / XGBoost / LightGBM classifiers
- Member configurations and hyperparameters
"""

from src.models.model_config import MEMBER_CONFIGS, get_member_config

__all__ = [
    # Core classes (lazy so that importing the package does not load xgboost/lightgbm)
    "BasePredictor",
    "EnsemblePredictor",
    # Configuration
    "MEMBER_CONFIGS",
    "get_member_config",
]


def __getattr__(name: str):
    if name == "BasePredictor":
        from src.models.base_predictor import BasePredictor

        return BasePredictor
    if name == "EnsemblePredictor":
        from src.models.ensemble_model import EnsemblePredictor

        return EnsemblePredictor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
