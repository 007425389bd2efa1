"""ReelMates: category rows over TMDB, curated picks, favorites and taste matches."""

__version__ = "1.0.0"
