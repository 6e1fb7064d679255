"""
Bowel sound recording, playback and classification.

Captures or imports an audio recording, plays it back with scrubbing,
and classifies a fixed 15,600-sample window of it with a pre-trained
model.
"""

__version__ = "1.0.0"
