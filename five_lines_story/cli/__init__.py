"""
Command line interface for 5 Lines Story.
"""
