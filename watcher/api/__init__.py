"""
REST API for the Catalog Watcher.
"""
