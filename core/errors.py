"""
Error taxonomy for the decode pipeline.

Construction-time misconfiguration fails fast (InvalidConfiguration, InvalidSize).
Model load and per-cycle inference failures are recoverable and are swallowed at
the cycle boundary by the pipeline.
"""


class DecoderError(Exception):
    """Base class for all decoder errors."""


class InvalidConfiguration(DecoderError, ValueError):
    """Bad sizes or intervals supplied at construction time."""


class InvalidSize(InvalidConfiguration):
    """FFT size is not a positive power of two."""


class ModelLoadFailure(DecoderError):
    """The inference engine could not initialize a language profile."""


class InferenceFailure(DecoderError):
    """A single decode request failed (bad tensor, boundary crash, timeout)."""
