"""
5 Lines Story backend.

Turns a free-text idea into story paths and five-line stories through a
hosted language model, with per-user usage and cost accounting.
"""

__version__ = "0.1.0"
