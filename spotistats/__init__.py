"""spotistats - aggregated Spotify listening stats served over HTTP."""

__version__ = "1.0.0"
