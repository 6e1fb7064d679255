"""
Classifiers turning feature vectors into label probabilities.

TensorFlow is imported only when a hub model is actually loaded.
"""

from bowelsound.classifiers.base import BaseClassifier, Classifier
from bowelsound.classifiers.hub import HubClassifier, create_classifier, load_labels

__all__ = [
    "BaseClassifier",
    "Classifier",
    "HubClassifier",
    "create_classifier",
    "load_labels",
]
