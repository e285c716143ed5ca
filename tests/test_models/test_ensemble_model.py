"""Tests for the direction ensemble predictor."""
import numpy as np
import pandas as pd
import pytest

from src.models.ensemble_model import EnsemblePredictor
from src.models.model_config import MEMBER_CONFIGS, TREE_MEMBERS, get_member_config


@pytest.fixture
def separable_data():
    """Up moves whenever the first feature is positive."""
    rng = np.random.default_rng(7)
    X = pd.DataFrame(rng.normal(size=(80, 4)), columns=["f0", "f1", "f2", "f3"])
    y = pd.Series((X["f0"] > 0).astype(int))
    return X, y


class TestMemberConfig:
    def test_known_members(self):
        assert set(MEMBER_CONFIGS) == {"random_forest", "xgboost", "lightgbm", "logistic"}

    def test_unknown_member(self):
        with pytest.raises(ValueError, match="Unknown ensemble member"):
            get_member_config("svm")

    def test_returns_copy(self):
        config = get_member_config("random_forest")
        config["hyperparameters"]["n_estimators"] = 1
        assert MEMBER_CONFIGS["random_forest"]["hyperparameters"]["n_estimators"] == 100

    def test_tree_members_are_seeded(self):
        for name in TREE_MEMBERS:
            assert get_member_config(name)["hyperparameters"]["random_state"] == 42


class TestEnsemblePredictor:
    def test_requires_members(self):
        with pytest.raises(ValueError):
            EnsemblePredictor(members=())

    def test_estimators_override_only_trees(self):
        model = EnsemblePredictor(members=("random_forest", "logistic"), n_estimators=7)
        assert model.hyperparameters["random_forest"]["n_estimators"] == 7
        assert "n_estimators" not in model.hyperparameters["logistic"]

    def test_custom_hyperparameters(self):
        model = EnsemblePredictor(
            members=("xgboost",), custom_hyperparameters={"xgboost": {"max_depth": 6}}
        )
        assert model.hyperparameters["xgboost"]["max_depth"] == 6

    def test_learns_direction(self, separable_data):
        X, y = separable_data
        model = EnsemblePredictor(members=("logistic",))
        model.train(X, y)

        up = pd.DataFrame([[2.0, 0.0, 0.0, 0.0]], columns=X.columns)
        down = pd.DataFrame([[-2.0, 0.0, 0.0, 0.0]], columns=X.columns)
        assert model.predict(up) > 0.5
        assert model.predict(down) < 0.5

    @pytest.mark.parametrize("members", [("random_forest",), ("xgboost",), ("lightgbm",)])
    def test_tree_members_return_probability(self, separable_data, members):
        X, y = separable_data
        model = EnsemblePredictor(members=members, n_estimators=10)
        model.train(X, y)

        p = model.predict(X)
        assert 0.0 <= p <= 1.0
        assert model.is_trained

    def test_full_ensemble_averages_members(self, separable_data):
        X, y = separable_data
        model = EnsemblePredictor(
            members=("random_forest", "xgboost", "lightgbm", "logistic"), n_estimators=10
        )
        model.train(X, y)

        manual = np.mean(
            [m.predict_proba(X.to_numpy()[-1:])[0][1] for m in model.models]
        )
        assert model.predict(X) == pytest.approx(manual)

    def test_scores_last_row(self, separable_data):
        X, y = separable_data
        model = EnsemblePredictor(members=("logistic",))
        model.train(X, y)

        assert model.predict(X) == pytest.approx(model.predict(X.iloc[[-1]]))

    @pytest.mark.parametrize("label", [0, 1])
    def test_single_class_labels(self, separable_data, label):
        X, _ = separable_data
        model = EnsemblePredictor(members=("random_forest",))
        model.train(X, pd.Series([label] * len(X)))

        assert model.predict(X) == float(label)
        assert model.models == []

    def test_empty_training_data(self):
        with pytest.raises(ValueError, match="empty"):
            EnsemblePredictor().train(np.empty((0, 3)), [])

    def test_length_mismatch(self, separable_data):
        X, y = separable_data
        with pytest.raises(ValueError, match="mismatch"):
            EnsemblePredictor().train(X, y[:-1])

    def test_non_binary_labels(self, separable_data):
        X, _ = separable_data
        with pytest.raises(ValueError, match="binary"):
            EnsemblePredictor().train(X, [2] * len(X))

    def test_predict_untrained(self):
        with pytest.raises(RuntimeError):
            EnsemblePredictor().predict([[0.0, 1.0]])
