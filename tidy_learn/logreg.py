from __future__ import annotations

"""
Binary logistic regression trained with batch gradient descent.
Registered as the "gd" engine of logistic_reg; follows the scikit-learn
estimator protocol so it can sit next to the sklearn engines.
"""

import logging

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin

logger = logging.getLogger(__name__)


class LogisticRegressionGD(ClassifierMixin, BaseEstimator):
    """
    Logistic regression with an L2 penalty, fitted by batch gradient descent.
    Features are standardized internally; coefficients live in that space.
    """

    def __init__(
        self,
        lr: float = 0.1,
        max_iter: int = 5000,
        tol: float = 1e-6,
        l2: float = 0.0,
    ):
        self.lr = lr
        self.max_iter = max_iter
        self.tol = tol
        self.l2 = l2

    @staticmethod
    def _sigmoid(z: np.ndarray) -> np.ndarray:
        z = np.clip(z, -500, 500)
        return 1.0 / (1.0 + np.exp(-z))

    @staticmethod
    def _add_bias(X: np.ndarray) -> np.ndarray:
        return np.hstack([np.ones((X.shape[0], 1)), X])

    def _scale(self, X: np.ndarray) -> np.ndarray:
        return (X - self.mean_) / self.std_

    def fit(self, X, y):
        """Learn weights for P(y == classes_[1])."""
        X_arr = np.asarray(X, dtype=float)
        y_arr = np.asarray(y)
        self.classes_ = np.unique(y_arr)
        if len(self.classes_) != 2:
            raise ValueError(
                f"LogisticRegressionGD needs exactly 2 classes, got {len(self.classes_)}"
            )
        target = (y_arr == self.classes_[1]).astype(float)

        self.mean_ = X_arr.mean(axis=0)
        self.std_ = X_arr.std(axis=0)
        self.std_[self.std_ == 0] = 1.0
        X_bias = self._add_bias(self._scale(X_arr))
        weights = np.zeros(X_bias.shape[1])

        self.n_iter_ = 0
        for step in range(1, self.max_iter + 1):
            preds = self._sigmoid(X_bias @ weights)
            grad = (X_bias.T @ (preds - target)) / len(target)
            if self.l2:
                grad[1:] += self.l2 * weights[1:]

            new_weights = weights - self.lr * grad
            converged = np.linalg.norm(new_weights - weights) < self.tol
            weights = new_weights
            self.n_iter_ = step
            if converged:
                break

            if step % 500 == 0:
                loss = -np.mean(
                    target * np.log(preds + 1e-12) + (1 - target) * np.log(1 - preds + 1e-12)
                )
                logger.debug("[GD] step=%d, loss=%.4f", step, loss)

        self.weights_ = weights
        self.intercept_ = float(weights[0])
        self.coef_ = weights[1:]
        return self

    def predict_proba(self, X) -> np.ndarray:
        """Columns follow classes_, as in scikit-learn."""
        if getattr(self, "weights_", None) is None:
            raise RuntimeError("Model is not fitted.")
        X_arr = np.asarray(X, dtype=float)
        positive = self._sigmoid(self._add_bias(self._scale(X_arr)) @ self.weights_)
        return np.column_stack([1.0 - positive, positive])

    def predict(self, X, threshold: float = 0.5) -> np.ndarray:
        positive = self.predict_proba(X)[:, 1] >= threshold
        return np.where(positive, self.classes_[1], self.classes_[0])
