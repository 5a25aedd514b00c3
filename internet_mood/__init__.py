"""
Internet Mood - an anonymous mood map service.

This package collects anonymous mood submissions (an emoji, a short reason and
a coarse location) and serves aggregate statistics for the world map and the
dashboard: counts per country and continent, trending moods and the phrases
people use to explain how they feel.
"""

__version__ = "0.1.0"
