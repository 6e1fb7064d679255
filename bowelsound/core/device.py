"""
Exclusive ownership of the audio hardware.

Recording and playback never hold the device at the same time. Both
engines of a session share one AudioDevice and acquire it before
opening a stream.
"""

import logging
from typing import Optional

from bowelsound.utils.errors import ConflictError


class AudioDevice:
    """Single-owner lease over the audio device."""

    def __init__(self) -> None:
        self._owner: Optional[str] = None
        self.logger = logging.getLogger("device")

    @property
    def owner(self) -> Optional[str]:
        """Name of the engine holding the device, or None."""
        return self._owner

    def is_free(self) -> bool:
        return self._owner is None

    def acquire(self, owner: str) -> None:
        """
        Take the device for ``owner``. Re-acquiring by the holder is a no-op.

        Raises:
            ConflictError: Another engine holds the device
        """
        if self._owner is not None and self._owner != owner:
            raise ConflictError(
                f"Audio device is busy with {self._owner}",
                requested_by=owner,
                held_by=self._owner,
            )
        if self._owner is None:
            self.logger.debug(f"Device acquired by {owner}")
        self._owner = owner

    def release(self, owner: str) -> None:
        """Give the device back; ignored unless ``owner`` holds it."""
        if self._owner == owner:
            self._owner = None
            self.logger.debug(f"Device released by {owner}")
