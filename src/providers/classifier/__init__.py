"""Media classifier providers.

AnthropicMediaClassifier sends the photo (or a video's thumbnail frame) to
Claude's vision API and parses its JSON identification.
"""

from src.providers.classifier.anthropic_classifier import AnthropicMediaClassifier

__all__ = ["AnthropicMediaClassifier"]
