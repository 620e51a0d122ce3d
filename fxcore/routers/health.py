from fastapi import APIRouter, Depends

from .deps import get_engine
from fxcore.services.rates.conversion import ConversionEngine

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness and provider chain")
def health(engine: ConversionEngine = Depends(get_engine)):
    return {"status": "ok", "providers": [p.name for p in engine.providers]}
