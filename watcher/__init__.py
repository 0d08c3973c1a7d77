"""
Catalog Watcher Django application.

This app monitors public storefront catalogs, reconciles each fetch
against stored state and records price, stock and catalog change events.
"""
