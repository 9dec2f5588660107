"""typeinference package root."""

import logging

from typeinference.exceptions import ConfigurationError, TypeInferenceError

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["__version__", "ConfigurationError", "TypeInferenceError"]

__version__ = "0.1.0"
