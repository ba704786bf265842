"""
Image Derivative Worker

Downloads one source image, runs a configured list of named operations over
it and publishes every derivative to object storage.
"""

__version__ = "1.0.0"
