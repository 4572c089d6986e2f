"""
Library version, reported in the ``User-Agent`` header and the default
``context.library`` of every batch.
"""

__version__ = "0.1.0"
