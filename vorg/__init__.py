"""vorg: personal media archive with a content-addressed store and a sqlite index."""

__version__ = "0.4.0"
