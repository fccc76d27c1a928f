from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
import logging

from utils.deps import get_geocoder
from utils.geocoding import GeocodingError

logger = logging.getLogger(__name__)

router = APIRouter()


class GeocodeRequest(BaseModel):
    address: str


@router.post("")
def geocode_address(request: GeocodeRequest, geocoder = Depends(get_geocoder)):
    address = request.address.strip()
    if not address:
        raise HTTPException(status_code=400, detail="Address is required")

    try:
        result = geocoder.geocode(address)
    except GeocodingError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if result is None:
        raise HTTPException(status_code=404, detail="Address not found")
    return result
