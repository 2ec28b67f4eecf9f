"""CARv2 headers, CIDs and multihashes, and sorted and insertion block indexes."""

__version__ = "0.1.0"

__all__ = ["__version__"]