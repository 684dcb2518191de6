"""Abstract base class for content classifiers.

A classifier looks at one uploaded photo/video and returns a structured
guess (artist, venue, date) with confidence scores.  The model behind it
is opaque to the engine: tests inject a stub, production uses Claude
vision (:class:`~src.providers.classifier.anthropic_classifier.AnthropicMediaClassifier`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.media import AnalysisResult, MediaItem


# Concrete implementation: AnthropicMediaClassifier (src/providers/classifier/)
class IMediaClassifier(ABC):
    """Contract for media content classifiers."""

    @abstractmethod
    async def analyze(self, media: MediaItem) -> AnalysisResult:
        """Classify *media* and return the structured guess.

        Parameters
        ----------
        media:
            The media item to analyse.  ``storage_ref`` (or
            ``thumbnail_ref`` for videos) locates the binary.

        Returns
        -------
        AnalysisResult
            Artist/venue/date guesses with per-field confidences.

        Raises
        ------
        src.utils.errors.ClassifierError
            If the media cannot be classified.  ``reason`` and ``retryable``
            are copied into the item's ``AnalysisError``.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"anthropic"``."""
