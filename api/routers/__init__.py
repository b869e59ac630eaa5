"""
RFPFlow API Routers

Modular API routers for different functional areas.
"""

from .email import router as email_router
from .rfps import router as rfps_router
from .vendors import router as vendors_router

__all__ = ["email_router", "rfps_router", "vendors_router"]
