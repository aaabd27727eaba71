"""Video rooms for teleconsultations through the Daily.co REST API."""

import logging
import time
from typing import Any, Optional
from uuid import UUID

import httpx
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.tenant import TenantContext
from app.core.config import settings
from app.core.security import generate_token
from app.models import Consultation, DoctorProfile
from app.schemas.consultation import VideoRoomInfoResponse, VideoTokenResponse
from app.services.consultations import ConsultationService, generate_room_name

logger = logging.getLogger(__name__)

ROOM_TTL_SECONDS = 24 * 60 * 60
TOKEN_GRACE_MINUTES = 30
DAILY_TIMEOUT = 10.0


class DailyClient:
    """
    Minimal Daily.co client.

    Without DAILY_API_KEY rooms and tokens are generated locally so the
    rest of the flow can be exercised in development.
    """

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None) -> None:
        self.api_key = api_key if api_key is not None else settings.DAILY_API_KEY
        self.api_url = (api_url or settings.DAILY_API_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def create_room(self, room_name: str) -> dict[str, Any]:
        """
        Create a private room expiring in 24 hours.

        Raises:
            HTTPException: 500 if Daily.co rejects the request
        """
        if not self.is_configured:
            logger.info(f"[VIDEO MOCK] Room {room_name}")
            return {"name": room_name, "url": f"https://{settings.DAILY_DOMAIN}/{room_name}"}

        payload = {
            "name": room_name,
            "privacy": "private",
            "properties": {
                "enable_knocking": True,
                "enable_screenshare": True,
                "enable_chat": True,
                "enable_prejoin_ui": True,
                "start_video_off": False,
                "start_audio_off": False,
                "exp": int(time.time()) + ROOM_TTL_SECONDS,
                "eject_at_room_exp": True,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=DAILY_TIMEOUT) as client:
                response = await client.post(f"{self.api_url}/rooms", json=payload, headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Daily.co room creation failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao criar sala de video",
            ) from e
        return response.json()

    async def create_meeting_token(
        self,
        room_name: str,
        user_id: str,
        user_name: str,
        is_owner: bool,
        expiration_minutes: int,
    ) -> str:
        """
        Raises:
            HTTPException: 500 if Daily.co rejects the request
        """
        if not self.is_configured:
            return f"mock-{generate_token(16)}"

        payload = {
            "properties": {
                "room_name": room_name,
                "user_id": user_id,
                "user_name": user_name,
                "is_owner": is_owner,
                "enable_screenshare": True,
                "start_video_off": False,
                "start_audio_off": False,
                "exp": int(time.time()) + expiration_minutes * 60,
            }
        }
        try:
            async with httpx.AsyncClient(timeout=DAILY_TIMEOUT) as client:
                response = await client.post(
                    f"{self.api_url}/meeting-tokens", json=payload, headers=self._headers()
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Daily.co token generation failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao gerar token de video",
            ) from e
        return response.json()["token"]

    async def get_room(self, room_name: str) -> Optional[dict[str, Any]]:
        """Room details, or None when the room does not exist."""
        if not self.is_configured:
            return {"name": room_name, "url": f"https://{settings.DAILY_DOMAIN}/{room_name}"}

        try:
            async with httpx.AsyncClient(timeout=DAILY_TIMEOUT) as client:
                response = await client.get(f"{self.api_url}/rooms/{room_name}", headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Daily.co room lookup failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao obter info da sala",
            ) from e

        if response.status_code == status.HTTP_404_NOT_FOUND:
            return None
        if response.is_error:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao obter info da sala",
            )
        return response.json()


class VideoService:
    """Teleconsultation room access."""

    def __init__(self, db: AsyncSession, daily: Optional[DailyClient] = None) -> None:
        self.db = db
        self.daily = daily or DailyClient()

    async def _authorize(self, tenant: TenantContext, consultation: Consultation) -> bool:
        """
        Check the caller may join. Returns whether the caller is the doctor.

        Raises:
            HTTPException: 403 for anyone other than the doctor, the patient
                or an active member of the organization
        """
        doctor_profile_id = await self.db.scalar(
            select(DoctorProfile.id).where(DoctorProfile.user_id == tenant.user_id)
        )
        is_doctor = doctor_profile_id is not None and doctor_profile_id == consultation.doctor_id
        is_patient = bool(consultation.patient.email) and consultation.patient.email == tenant.user.email

        if not (is_doctor or is_patient or tenant.membership.is_active):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Acesso nao autorizado a esta consulta",
            )
        return is_doctor

    async def _ensure_room(self, consultation: Consultation) -> tuple[str, str]:
        if consultation.room_name and consultation.daily_room_url:
            return consultation.room_name, consultation.daily_room_url

        room = await self.daily.create_room(consultation.room_name or generate_room_name())
        consultation.room_name = room["name"]
        consultation.daily_room_url = room["url"]
        await self.db.commit()

        logger.info(f"Video room {consultation.room_name} created for consultation {consultation.id}")
        return consultation.room_name, consultation.daily_room_url

    async def get_token(self, tenant: TenantContext, consultation_id: UUID) -> VideoTokenResponse:
        """Meeting token valid for the consultation length plus a grace period."""
        consultation = await ConsultationService(self.db).get_consultation(
            tenant.organization_id, consultation_id
        )
        is_owner = await self._authorize(tenant, consultation)
        room_name, room_url = await self._ensure_room(consultation)

        token = await self.daily.create_meeting_token(
            room_name,
            user_id=str(tenant.user_id),
            user_name=tenant.user.name or "Participante",
            is_owner=is_owner,
            expiration_minutes=consultation.duration + TOKEN_GRACE_MINUTES,
        )
        return VideoTokenResponse(token=token, room_url=room_url, room_name=room_name, is_owner=is_owner)

    async def get_room_info(self, tenant: TenantContext, consultation_id: UUID) -> VideoRoomInfoResponse:
        consultation = await ConsultationService(self.db).get_consultation(
            tenant.organization_id, consultation_id
        )
        await self._authorize(tenant, consultation)

        if not consultation.daily_room_url or not consultation.room_name:
            return VideoRoomInfoResponse(active=False)

        room_info = await self.daily.get_room(consultation.room_name)
        return VideoRoomInfoResponse(active=room_info is not None, room_info=room_info)
