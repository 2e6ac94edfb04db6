# app/core/limit_cache.py
"""
Cache ของสรุปวงเงิน/ยอดซื้อต่องวด สำหรับฝั่ง advisory (ไฮไลต์เลขเต็มบนหน้าจอ)

ข้อมูลเก่าได้ไม่เกิน LIMIT_SUMMARY_CACHE_SECONDS และถูกล้างทันทีเมื่อแอดมินแก้กฎ
ฝั่งบันทึกบิลจริง (CommitGate) ไม่อ่านจาก cache นี้เด็ดขาด
"""
import logging
import threading
import time
from typing import Callable, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

# Structure: { "round_id": { "data": {...}, "timestamp": float } }
_SUMMARY_CACHE: Dict[str, Dict] = {}
_cache_lock = threading.Lock()

# เลขรุ่นต่องวด เพิ่มทุกครั้งที่ invalidate (_epoch เพิ่มเมื่อ clear ทั้งหมด)
# snapshot ที่สร้างเสร็จหลังถูก invalidate ระหว่างทางจะไม่ถูกเก็บลง cache
_GENERATIONS: Dict[str, int] = {}
_epoch = 0

_cache_hits = 0
_cache_misses = 0


def get_cached_summary(round_id: str, build_callback: Callable[[], dict], max_age: Optional[float] = None) -> dict:
    """
    Args:
        round_id: งวดที่ต้องการ
        build_callback: ฟังก์ชันที่ query DB แล้วคืน summary dict
        max_age: อายุสูงสุดของข้อมูล (วินาที) ไม่ระบุใช้ค่าจาก settings
    """
    global _cache_hits, _cache_misses

    if max_age is None:
        max_age = settings.LIMIT_SUMMARY_CACHE_SECONDS
    now = time.monotonic()

    with _cache_lock:
        entry = _SUMMARY_CACHE.get(round_id)
        if entry is not None and now - entry["timestamp"] <= max_age:
            _cache_hits += 1
            return entry["data"]
        _cache_misses += 1
        token = (_epoch, _GENERATIONS.get(round_id, 0))

    # สร้างข้อมูลนอก lock เพื่อไม่ให้ request งวดอื่นต้องรอ DB
    data = build_callback()

    with _cache_lock:
        if token != (_epoch, _GENERATIONS.get(round_id, 0)):
            logger.debug("Round %s was invalidated while building, summary not cached", round_id)
            return data
        _SUMMARY_CACHE[round_id] = {"data": data, "timestamp": now}
    logger.debug("Refreshed limit summary cache for round %s", round_id)
    return data


def invalidate_cache(round_id: str) -> None:
    """ล้าง cache ของงวด (เรียกเมื่อแก้กฎวงเงิน/ข้อยกเว้น หรือบันทึกบิลสำเร็จ)"""
    with _cache_lock:
        _GENERATIONS[round_id] = _GENERATIONS.get(round_id, 0) + 1
        if _SUMMARY_CACHE.pop(round_id, None) is not None:
            logger.info("🗑️ Invalidated limit summary cache for round %s", round_id)


def clear_cache() -> None:
    global _cache_hits, _cache_misses, _epoch
    with _cache_lock:
        _SUMMARY_CACHE.clear()
        _GENERATIONS.clear()
        _epoch += 1
        _cache_hits = 0
        _cache_misses = 0


def get_cache_stats() -> Dict:
    total = _cache_hits + _cache_misses
    return {
        "cache_hits": _cache_hits,
        "cache_misses": _cache_misses,
        "hit_rate": (_cache_hits / total * 100) if total > 0 else 0.0,
        "cached_rounds": len(_SUMMARY_CACHE),
        "max_age_seconds": settings.LIMIT_SUMMARY_CACHE_SECONDS,
    }
