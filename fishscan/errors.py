"""Exceptions and warnings raised by the fishscan pipeline."""


class FishscanError(Exception):
    """Base class for detection pipeline failures."""


class DecodeError(FishscanError):
    """Raised when the source image cannot be read or decoded."""


class EngineNotReadyError(FishscanError):
    """Raised when the inference engine failed to initialize."""


class InferenceExecutionError(FishscanError):
    """Raised when the inference engine fails while running a tensor."""


class ShapeMismatchWarning(UserWarning):
    """Engine output length disagrees with the configured anchors and classes."""
