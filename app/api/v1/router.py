from fastapi import APIRouter
# play เป็น Package รวม limits, bills, rules
from app.api.v1.endpoints import auth, play

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(play.router, prefix="/play", tags=["play"])
