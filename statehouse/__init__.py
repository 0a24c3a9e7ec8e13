"""In-memory home device store, whole-house state derivation and MQTT publishing."""

__version__ = "0.1.0"

__all__ = ["__version__"]