# gatehouse/api/v1/routers/health.py
from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}
