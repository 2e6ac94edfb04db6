import logging
import sys
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.api.v1.router import api_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

app = FastAPI(
    title="Lotto Shop Bet Limit API",
    description="ระบบรับแทงหวย พร้อมตรวจวงเงินต่อเลขแบบกันยอดชนกัน",
    version="1.0.0"
)

# ช่วงพัฒนาใช้ ["*"] ได้ ขึ้นจริงให้ใส่ URL หน้าบ้านแทน
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")

# Health Check
@app.get("/")
def root():
    return {
        "status": "online",
        "message": "Welcome to Lotto Shop API",
        "version": "1.0.0"
    }
