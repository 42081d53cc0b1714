"""
Configuration loading for 5 Lines Story.
"""
