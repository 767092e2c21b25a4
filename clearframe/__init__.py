"""
ClearFrame - remove watermarks and logos from selected areas of a video.
"""

__version__ = "1.0.0"
