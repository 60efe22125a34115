"""Progress and enrollment tracking engine for the learnpath platform."""

__version__ = "0.1.0"
