"""
Classifier interface for the bowel sound analysis application.

A classifier maps a 15,600-sample FeatureVector to a PredictionResult.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Protocol

import numpy as np

from bowelsound.core.models import FEATURE_LENGTH, FeatureVector, PredictionResult
from bowelsound.utils.errors import InferenceError


class Classifier(Protocol):
    """
    Contract of the classifier collaborator.

    Any object with a ``name`` and a ``predict(features)`` method that
    returns a PredictionResult satisfies it.
    """

    @property
    def name(self) -> str:
        ...

    def predict(self, features: FeatureVector) -> PredictionResult:
        """
        Raises:
            InferenceError: Input is rejected or inference fails
        """
        ...


class BaseClassifier(ABC):
    """
    Shared input validation, timing and error wrapping.

    Template method: ``predict()`` validates and times the call,
    subclasses implement ``_predict_impl()`` on the raw sample array.
    """

    def __init__(self, name: str):
        self._name = name
        self.logger = logging.getLogger(f"classifier.{name}")

    @property
    def name(self) -> str:
        return self._name

    def predict(self, features: FeatureVector) -> PredictionResult:
        """
        Classify a feature vector.

        Raises:
            InferenceError: Input has the wrong shape, the model fails, or
                            it returns scores outside [0, 1]
        """
        samples = np.asarray(features.samples)
        if samples.shape != (FEATURE_LENGTH,):
            raise InferenceError(
                f"Expected input of shape ({FEATURE_LENGTH},), got {samples.shape}",
                classifier_name=self.name,
            )

        start_time = time.time()
        try:
            probabilities = self._predict_impl(samples)
            result = PredictionResult(
                probabilities=probabilities,
                classifier=self.name,
                processing_time=time.time() - start_time,
            )
        except InferenceError:
            raise
        except Exception as e:
            self.logger.error(f"Inference failed: {e}")
            raise InferenceError(
                f"{self.name} inference failed: {e}",
                classifier_name=self.name,
                original_error=e,
            ) from e

        self.logger.info(f"Inference complete in {result.processing_time:.3f}s")
        return result

    @abstractmethod
    def _predict_impl(self, samples: np.ndarray) -> Dict[str, float]:
        """Return label -> probability for a (15600,) float32 array."""
        raise NotImplementedError
