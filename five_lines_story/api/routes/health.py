"""
Liveness endpoint.
"""

from fastapi import APIRouter

from ... import __version__
from ..responses import envelope

router = APIRouter(tags=["health"])


@router.get("/api/health")
def health():
    return envelope({"status": "ok", "version": __version__})
