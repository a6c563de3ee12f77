"""depstage - channel-based artifact resolution and candidate staging."""

__version__ = "0.3.0"
