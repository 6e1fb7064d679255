"""
TensorFlow Hub / SavedModel backed classifier.

Loads a model handle (a tfhub.dev URL or a local SavedModel directory)
and turns its class scores into a label -> probability mapping.
"""

import csv
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from bowelsound.classifiers.base import BaseClassifier
from bowelsound.utils.errors import InferenceError, ModelLoadError

logger = logging.getLogger(__name__)


class HubClassifier(BaseClassifier):
    """
    Classifier backed by a TensorFlow model.

    Input: 15,600 float32 samples
    Output: one score per class; (frames, classes) score matrices, as
            returned by YAMNet-style models, are averaged over frames.
    """

    def __init__(
        self,
        handle: Optional[str] = None,
        labels: Optional[List[str]] = None,
        model: Optional[Callable[[np.ndarray], Any]] = None,
        name: str = "hub",
    ):
        """
        Initialize the classifier.

        Args:
            handle: TensorFlow Hub handle or SavedModel path, loaded lazily
            labels: Class names in model output order
            model: Already loaded model callable (skips loading ``handle``)
            name: Classifier name used in results and logs
        """
        super().__init__(name)
        if handle is None and model is None:
            raise ValueError("Either a model handle or a model must be given")
        self.handle = handle
        self.labels = labels or []
        self._model = model

    @property
    def model(self) -> Callable[[np.ndarray], Any]:
        """Lazy-load the model."""
        if self._model is None:
            self._model = self._load_model()
        return self._model

    def _load_model(self) -> Callable[[np.ndarray], Any]:
        try:
            import tensorflow_hub as hub
            self.logger.info(f"Loading model from {self.handle}...")
            model = hub.load(self.handle)
            self.logger.info("Model loaded successfully")
            return model
        except Exception as e:
            raise ModelLoadError(
                f"Failed to load model {self.handle}: {e}",
                model_name=self.name
            ) from e

    def _predict_impl(self, samples: np.ndarray) -> Dict[str, float]:
        outputs = self.model(samples)

        # YAMNet-style models return (scores, embeddings, spectrogram)
        if isinstance(outputs, (tuple, list)):
            outputs = outputs[0]
        scores = np.asarray(outputs.numpy() if hasattr(outputs, 'numpy') else outputs)

        if scores.ndim == 2:
            scores = np.mean(scores, axis=0)
        if scores.ndim != 1:
            raise InferenceError(
                f"Unexpected model output shape {scores.shape}",
                classifier_name=self.name
            )

        return {
            self._get_label(index): float(score)
            for index, score in enumerate(scores)
        }

    def _get_label(self, index: int) -> str:
        if 0 <= index < len(self.labels):
            return self.labels[index]
        return f"Class_{index}"


def load_labels(path: Path) -> List[str]:
    """
    Load class names from a label file.

    CSV files with a ``display_name`` column (the AudioSet class map
    layout) use that column; any other file is read as one label per line.
    """
    path = Path(path)
    try:
        with open(path, 'r', newline='') as f:
            if path.suffix.lower() == '.csv':
                reader = csv.DictReader(f)
                if reader.fieldnames and 'display_name' in reader.fieldnames:
                    return [row['display_name'] for row in reader]
                f.seek(0)
            return [line.strip() for line in f if line.strip()]
    except OSError as e:
        raise ModelLoadError(f"Cannot read label file {path}: {e}") from e


def create_classifier(config: Optional[Dict[str, Any]] = None) -> Optional[HubClassifier]:
    """
    Factory function to create a classifier from the ``classifier`` config section.

    Returns None when no model handle is configured.
    """
    if config is None:
        config = {}

    handle = config.get('handle')
    if not handle:
        logger.info("No classifier handle configured")
        return None

    labels_path = config.get('labels')
    labels = load_labels(Path(labels_path)) if labels_path else None

    return HubClassifier(handle=handle, labels=labels, name=config.get('name', 'hub'))
