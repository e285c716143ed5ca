"""
Abstract base class for direction predictors.

The backtest core only relies on this contract: train on feature vectors with
binary labels, then return the probability that the next move is up. The sign
of ``p - 0.5`` is the directional lean.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import joblib
import numpy as np
import pandas as pd


class BasePredictor(ABC):
    """
    Abstract base class for direction predictors.

    Defines the interface that all predictors must implement:
    - train: Fit on feature vectors and {0, 1} labels
    - predict: Probability in [0, 1] that the next move is up
    - save / load: joblib serialization
    """

    def __init__(self, model_type: str, version: str = "1.0.0"):
        """
        Initialize base predictor.

        Args:
            model_type: Type of model (e.g., "direction_ensemble")
            version: Model version string (semantic versioning)
        """
        self.model_type = model_type
        self.version = version
        self.is_trained = False
        self.feature_names: Optional[list] = None
        self.training_metadata: Dict[str, Any] = {}

    @abstractmethod
    def train(self, features, labels) -> None:
        """
        Train the predictor.

        Args:
            features: Sequence of feature vectors (2-D array-like or DataFrame)
            labels: Sequence of binary labels (1 = up, 0 = not up)

        Raises:
            ValueError: If input data is invalid
        """
        pass

    @abstractmethod
    def predict(self, features) -> float:
        """
        Probability that the move following the LAST feature vector is up.

        Args:
            features: Sequence of feature vectors; the last row is scored

        Returns:
            Probability in [0, 1]

        Raises:
            RuntimeError: If the predictor has not been trained
        """
        pass

    def save(self, path: str) -> None:
        """
        Save predictor to disk using joblib.

        Raises:
            RuntimeError: If the predictor has not been trained
        """
        if not self.is_trained:
            raise RuntimeError(f"Cannot save untrained {self.model_type} model")

        save_path = Path(path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self, save_path)

    @classmethod
    def load(cls, path: str) -> "BasePredictor":
        """
        Load predictor from disk.

        Raises:
            FileNotFoundError: If model file does not exist
        """
        load_path = Path(path)
        if not load_path.exists():
            raise FileNotFoundError(f"Model file not found: {path}")

        return joblib.load(load_path)

    @staticmethod
    def _as_matrix(features) -> np.ndarray:
        """Coerce a DataFrame or nested sequence into a 2-D float matrix."""
        if isinstance(features, pd.DataFrame):
            matrix = features.to_numpy(dtype=np.float64)
        else:
            matrix = np.asarray(features, dtype=np.float64)
        if matrix.ndim == 1:
            matrix = matrix.reshape(1, -1)
        if matrix.ndim != 2:
            raise ValueError(f"Expected 2-D features, got shape {matrix.shape}")
        return matrix

    def _validate_features(self, matrix: np.ndarray) -> None:
        """
        Validate that input features match the training features.

        Raises:
            RuntimeError: If model has not been trained
            ValueError: If the feature width differs from training
        """
        if not self.is_trained:
            raise RuntimeError(f"{self.model_type} model has not been trained yet")

        expected = self.training_metadata.get("n_features")
        if expected is not None and matrix.shape[1] != expected:
            raise ValueError(
                f"Feature width mismatch: expected {expected}, got {matrix.shape[1]}"
            )

    def _store_training_metadata(
        self,
        features,
        matrix: np.ndarray,
        labels: np.ndarray,
        hyperparameters: Dict[str, Any],
    ) -> None:
        """Store metadata about the training process."""
        if isinstance(features, pd.DataFrame):
            self.feature_names = list(features.columns)
        self.training_metadata = {
            "n_samples": int(matrix.shape[0]),
            "n_features": int(matrix.shape[1]),
            "positive_rate": float(labels.mean()) if len(labels) else 0.0,
            "hyperparameters": hyperparameters,
            "model_type": self.model_type,
            "version": self.version,
        }
