"""Consent audit: cookie, storage and third-party service discovery for consent banners."""

__version__ = "1.0.0"
