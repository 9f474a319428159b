"""
sitesync - version-controlled JSON sync, database dump/restore and plugin
archives for a WordPress site.
"""

__version__ = "1.4.0"
