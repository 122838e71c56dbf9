"""
Atrial-fibrillation scoring with a bundled logistic model and an optional
remote fallback.

The local model is loaded lazily, once, from a JSON artifact shipped with the
package (see :mod:`rppg_af.af_model`).  A missing or malformed artifact is
logged and turns every local score into *None*; it never raises.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Mapping, Optional, Protocol, Union

from rppg_af.af_model import AFLogisticModel, load_model

logger = logging.getLogger(__name__)

BUNDLED_MODEL_PATH: Path = Path(__file__).parent / "data" / "af_logistic_model.json"


class AFError(Exception):
    """Base class for AF scoring errors."""


class ModelUnavailableError(AFError):
    """Neither the local model nor a remote classifier could produce a score."""


class RemoteAFClassifier(Protocol):
    """Remote inference service used when the local model cannot score."""

    async def probability(self, features: Mapping[str, float]) -> float:
        ...


class AFDetector:
    """
    Parameters
    ----------
    remote:
        Optional remote classifier consulted only when the local model
        returns nothing.
    model_path:
        Path to the logistic model artifact.  Defaults to the bundled one.
    """

    def __init__(
        self,
        remote: Optional[RemoteAFClassifier] = None,
        model_path: Union[str, Path, None] = None,
    ) -> None:
        self.remote = remote
        self.model_path = Path(model_path) if model_path is not None else BUNDLED_MODEL_PATH

        self._lock = threading.Lock()
        self._loaded = False
        self._model: Optional[AFLogisticModel] = None

    @property
    def model(self) -> Optional[AFLogisticModel]:
        """The local model, or *None* if the artifact could not be loaded."""
        with self._lock:
            if not self._loaded:
                self._loaded = True
                try:
                    self._model = load_model(self.model_path)
                except (OSError, ValueError) as e:
                    logger.warning("AF model unavailable (%s): %s", self.model_path, e)
                    self._model = None
            return self._model

    def probability(self, features: Mapping[str, float]) -> Optional[float]:
        """Local AF probability, or *None* if the model or a feature is missing."""
        model = self.model
        if model is None:
            return None
        return model.probability(features)

    async def probability_with_remote_fallback(self, features: Mapping[str, float]) -> float:
        """
        Prefer the local probability; otherwise await the remote classifier.

        Raises
        ------
        ModelUnavailableError
            No local score and no remote classifier, or the remote request was
            cancelled by the remote side.  Cancellation of the calling task
            itself propagates as ``asyncio.CancelledError``.
        Exception
            Any error raised by the remote classifier is propagated as is.
        """
        local = self.probability(features)
        if local is not None:
            return local

        if self.remote is None:
            raise ModelUnavailableError("local AF model unavailable and no remote classifier")

        try:
            return await self.remote.probability(features)
        except asyncio.CancelledError as exc:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            raise ModelUnavailableError("remote AF request cancelled") from exc
