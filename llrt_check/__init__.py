"""LLRT compatibility checker - compare Lambda handlers under Node.js and LLRT."""

__version__ = "0.1.0"
