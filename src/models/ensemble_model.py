"""
Direction ensemble predictor.

Averages the up-move probability of several classifiers:
- "random_forest": scikit-learn RandomForestClassifier
- "xgboost": XGBoost Classifier
- "lightgbm": LightGBM Classifier
- "logistic": scikit-learn LogisticRegression

Output: P(next move is up) in [0, 1].
"""

from typing import Any, Dict, List, Optional, Sequence

import lightgbm as lgb
import numpy as np
import xgboost as xgb
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression

from src.models.base_predictor import BasePredictor
from src.models.model_config import TREE_MEMBERS, get_member_config

_MEMBER_CLASSES = {
    "random_forest": RandomForestClassifier,
    "xgboost": xgb.XGBClassifier,
    "lightgbm": lgb.LGBMClassifier,
    "logistic": LogisticRegression,
}


class EnsemblePredictor(BasePredictor):
    """
    Soft-voting ensemble over configurable member classifiers.

    When the training labels contain a single class there is nothing to learn;
    the predictor then returns that class (0.0 or 1.0) without fitting members.
    """

    def __init__(
        self,
        members: Sequence[str] = ("random_forest",),
        n_estimators: Optional[int] = None,
        version: str = "1.0.0",
        custom_hyperparameters: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        """
        Initialize the ensemble.

        Args:
            members: Member names (see module docstring)
            n_estimators: Overrides the tree count of tree-based members
            version: Model version string
            custom_hyperparameters: Per-member overrides, e.g. {"xgboost": {"max_depth": 4}}

        Raises:
            ValueError: If no members are given or a member name is invalid
        """
        super().__init__(model_type="direction_ensemble", version=version)

        if not members:
            raise ValueError("EnsemblePredictor needs at least one member")

        self.member_names: List[str] = list(members)
        self.hyperparameters: Dict[str, Dict[str, Any]] = {}
        for name in self.member_names:
            params = get_member_config(name)["hyperparameters"]
            if n_estimators is not None and name in TREE_MEMBERS:
                params["n_estimators"] = n_estimators
            if custom_hyperparameters and name in custom_hyperparameters:
                params.update(custom_hyperparameters[name])
            self.hyperparameters[name] = params

        self.models: List[Any] = []
        self._constant_probability: Optional[float] = None

    def _initialize_models(self) -> None:
        self.models = [
            _MEMBER_CLASSES[name](**self.hyperparameters[name]) for name in self.member_names
        ]

    def train(self, features, labels) -> None:
        """
        Fit every member on the same training set.

        Raises:
            ValueError: If the data is empty, misaligned or not binary
        """
        matrix = self._as_matrix(features)
        y = np.asarray(labels, dtype=np.int64).ravel()

        if matrix.shape[0] == 0:
            raise ValueError("Training data is empty")
        if matrix.shape[0] != len(y):
            raise ValueError(
                f"features and labels length mismatch: {matrix.shape[0]} vs {len(y)}"
            )

        classes = set(np.unique(y).tolist())
        if not classes.issubset({0, 1}):
            raise ValueError(f"Labels must be binary (0 or 1). Found values: {sorted(classes)}")

        self._store_training_metadata(features, matrix, y, self.hyperparameters)

        if len(classes) == 1:
            self._constant_probability = float(classes.pop())
            self.models = []
        else:
            self._constant_probability = None
            self._initialize_models()
            for model in self.models:
                model.fit(matrix, y)

        self.is_trained = True

    def predict(self, features) -> float:
        """
        Average P(up) of all members for the last feature row.

        Returns:
            Probability in [0, 1]
        """
        matrix = self._as_matrix(features)
        self._validate_features(matrix)

        if self._constant_probability is not None:
            return self._constant_probability

        latest = matrix[-1:]
        probabilities = [self._positive_probability(model, latest) for model in self.models]
        return float(np.clip(np.mean(probabilities), 0.0, 1.0))

    @staticmethod
    def _positive_probability(model, row: np.ndarray) -> float:
        proba = model.predict_proba(row)[0]
        classes = list(model.classes_)
        return float(proba[classes.index(1)]) if 1 in classes else 0.0
