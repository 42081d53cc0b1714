"""
Core modules for 5 Lines Story.

This package contains prompt selection, reply normalization, pricing,
usage accounting and the per-exchange orchestration.
"""
