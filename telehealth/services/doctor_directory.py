import logging
from typing import Optional, List, Dict, Any

import httpx

from telehealth.config import settings
from telehealth.models.doctor import Doctor
from telehealth.models.chatbot import ClinicLocation

logger = logging.getLogger(__name__)


class DirectoryUnavailableError(Exception):
    """The external directory is not configured or did not answer"""


class DoctorDirectory:
    """Client for the external doctor directory used by the internet search"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url if base_url is not None else settings.DOCTOR_DIRECTORY_URL
        self.timeout = timeout or settings.DOCTOR_DIRECTORY_TIMEOUT
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def search(
        self,
        query: str,
        specialty: Optional[str] = None,
        location: Optional[str] = None,
        radius_km: int = 50,
        include_clinic_locations: bool = True,
        preferred_languages: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Search the directory

        Returns:
            Dict with "doctors" (list of Doctor) and "clinic_locations"

        Raises:
            DirectoryUnavailableError: not configured, unreachable or bad response
        """
        if not self.configured:
            raise DirectoryUnavailableError("Doctor directory is not configured")

        params = {
            "query": query,
            "radius_km": radius_km,
            "languages": ",".join(preferred_languages or ["English"]),
        }
        if specialty:
            params["specialty"] = specialty
        if location:
            params["location"] = location

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get("/doctors", params=params)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Doctor directory search failed: %s", e)
            raise DirectoryUnavailableError(str(e)) from e

        try:
            items = payload.get("doctors") or []
            doctors = [self._to_doctor(item, specialty, location) for item in items]
            clinics = []
            if include_clinic_locations:
                clinics = [
                    self._to_clinic(index, item, doctor)
                    for index, (item, doctor) in enumerate(zip(items, doctors), start=1)
                    if doctor.clinic_name or doctor.clinic_address
                ]
        except (ValueError, TypeError, AttributeError) as e:
            # pydantic ValidationError is a ValueError
            logger.warning("Doctor directory returned an unusable payload: %s", e)
            raise DirectoryUnavailableError(f"Malformed directory response: {e}") from e
        return {"doctors": doctors, "clinic_locations": clinics}

    @staticmethod
    def _to_doctor(item: Dict[str, Any], specialty: Optional[str], location: Optional[str]) -> Doctor:
        return Doctor(
            id=f"internet_{item.get('id') or item.get('name', '').lower().replace(' ', '_')}",
            name=item.get("name", "Unknown"),
            specialty=item.get("specialty") or specialty or "General Medicine",
            experience=float(item.get("experience") or 0),
            rating=float(item.get("rating") or 0),
            total_reviews=int(item.get("total_reviews") or 0),
            gender=item.get("gender"),
            location=item.get("location") or item.get("city") or location,
            fee=item.get("fee"),
            source="internet",
            booking_available=False,
            verification_status=item.get("verification_status", "unverified"),
            clinic_name=item.get("clinic_name"),
            clinic_address=item.get("clinic_address"),
            phone=item.get("phone"),
            online_profile=item.get("profile_url"),
        )

    @staticmethod
    def _to_clinic(index: int, item: Dict[str, Any], doctor: Doctor) -> ClinicLocation:
        return ClinicLocation(
            id=f"clinic_{index}",
            clinic_name=doctor.clinic_name or doctor.name,
            address=doctor.clinic_address,
            phone=doctor.phone,
            doctor_name=doctor.name,
            hours=item.get("hours"),
            coordinates=item.get("coordinates"),
        )


# Singleton instance
doctor_directory = DoctorDirectory()
