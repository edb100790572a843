"""
StormNeighbor - location-aware post feed and search service
"""

__version__ = "1.0.0"
