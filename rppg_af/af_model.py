"""
Standardised logistic-regression model for atrial-fibrillation scoring.

The model is a plain export of a scikit-learn ``StandardScaler`` +
``LogisticRegression`` pipeline::

    {
      "version": 1,
      "intercept": -0.62,
      "features": [
        {"name": "mean_rr", "scale_mean": 0.82, "scale_scale": 0.17, "coefficient": -0.45},
        ...
      ]
    }

Feature order in the file is the evaluation order.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

SUPPORTED_VERSION: int = 1


@dataclass(frozen=True)
class Feature:
    name: str
    scale_mean: float
    scale_scale: float
    coefficient: float


@dataclass(frozen=True)
class AFLogisticModel:
    """
    Parameters
    ----------
    features:
        Ordered feature descriptions (scaler statistics and coefficient).
    intercept:
        Bias term added before the sigmoid.
    """

    features: Tuple[Feature, ...]
    intercept: float

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.features)

    def probability(self, values: Mapping[str, float]) -> Optional[float]:
        """
        Return the AF probability in (0, 1) for the feature mapping *values*.

        Returns *None* when a required feature is missing or its scaler scale
        is zero; that means "insufficient data", not an error.
        """
        linear = self.intercept
        for feature in self.features:
            value = values.get(feature.name)
            if value is None or feature.scale_scale == 0:
                return None
            normalized = (value - feature.scale_mean) / feature.scale_scale
            linear += normalized * feature.coefficient
        return _sigmoid(linear)

    @classmethod
    def from_dict(cls, data: Mapping) -> "AFLogisticModel":
        """Build a model from its decoded JSON form, raising ``ValueError`` if malformed."""
        if not isinstance(data, Mapping):
            raise ValueError("model description must be a JSON object")
        version = data.get("version")
        if version != SUPPORTED_VERSION:
            raise ValueError(f"unsupported model version: {version!r}")
        try:
            features = tuple(
                Feature(
                    name=str(item["name"]),
                    scale_mean=float(item["scale_mean"]),
                    scale_scale=float(item["scale_scale"]),
                    coefficient=float(item["coefficient"]),
                )
                for item in data["features"]
            )
            intercept = float(data["intercept"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed model description: {exc}") from exc
        if not features:
            raise ValueError("model description has no features")
        return cls(features=features, intercept=intercept)


def load_model(path: Union[str, Path]) -> AFLogisticModel:
    """Read and validate a model artifact from *path*."""
    path = Path(path)
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    model = AFLogisticModel.from_dict(data)
    logger.info("Loaded AF model from %s (%d features)", path, len(model.features))
    return model


def _sigmoid(x: float) -> float:
    # Split on sign so exp() never overflows
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)
