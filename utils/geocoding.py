"""
Mapbox forward geocoding (address -> coordinates).
"""
import logging
from typing import Optional, Dict, Any
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"


class GeocodingError(Exception):
    pass


class MapboxGeocoder:
    def __init__(self, access_token: str, country: Optional[str] = "LV", timeout: int = 10):
        self.access_token = access_token
        self.country = country
        self.timeout = timeout

    def geocode(self, address: str) -> Optional[Dict[str, Any]]:
        """
        Returns {"latitude", "longitude"} for the best match, or None if nothing matched.
        Raises GeocodingError when the provider call fails.
        """
        url = MAPBOX_GEOCODING_URL.format(query=quote(address, safe=""))
        params = {"access_token": self.access_token, "limit": 1}
        if self.country:
            params["country"] = self.country

        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Mapbox request failed: {e}")
            raise GeocodingError(str(e)) from e

        if response.status_code != 200:
            logger.error(f"Mapbox API error: {response.status_code} - {response.text}")
            raise GeocodingError(f"Geocoding failed with status {response.status_code}")

        features = response.json().get("features") or []
        if not features:
            return None

        lng, lat = features[0]["center"]
        logger.info(f"Geocoded '{address}' to ({lat}, {lng})")
        return {"latitude": lat, "longitude": lng}
