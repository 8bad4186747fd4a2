"""Model-based machine learning chapter models, experiments and programs."""

__version__ = "0.1.0"
