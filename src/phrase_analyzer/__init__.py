"""Two-stage English phrase analysis service (sentence filter → analyzer)."""

__version__ = "2.0.0"
