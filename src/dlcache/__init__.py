"""
dlcache - a time-bounded disk cache in front of a slow media fetch.
"""

__version__ = "0.1.0"
