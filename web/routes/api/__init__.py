"""
API routes split by domain.

Each sub-module defines its own APIRouter which is composed
into the top-level router exposed by this package.
"""
from fastapi import APIRouter

from .health import router as health_router
from .quickbooks import router as quickbooks_router
from .marketers import router as marketers_router
from .company_summary import router as company_summary_router
from .coupons import router as coupons_router

router = APIRouter(tags=["api"])

router.include_router(health_router)
router.include_router(quickbooks_router)
router.include_router(marketers_router)
router.include_router(company_summary_router)
router.include_router(coupons_router)
