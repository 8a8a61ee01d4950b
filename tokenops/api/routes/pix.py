"""
PIX Endpoints
"""
from fastapi import APIRouter, Query

from tokenops.api.responses import ok
from tokenops.pix import check_pix_key

router = APIRouter(prefix="/api/pix", tags=["PIX"])


@router.get("/keys/validate")
async def validate_key(key: str = Query(..., min_length=1)):
    """Detect the key type and check its format. The key is echoed back masked."""
    check = check_pix_key(key)
    return ok({"type": check.key_type, "valid": check.valid, "masked": check.masked})
