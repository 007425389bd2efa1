"""Launcher for the ReelMates web service; run it with ``python -m reelmates``."""
