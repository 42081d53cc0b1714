"""
HTTP surface of the service (FastAPI).
"""
