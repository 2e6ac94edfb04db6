from fastapi import APIRouter
from . import limits, bills, rules

router = APIRouter()

router.include_router(limits.router)
router.include_router(bills.router)
router.include_router(rules.router)
