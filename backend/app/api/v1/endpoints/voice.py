from fastapi import APIRouter, Depends

from app.api.deps import get_voice_service
from app.schemas.voice import VoiceRequest, VoiceResponse
from app.services.voice_service import VoiceService

router = APIRouter()


@router.post("/turn", response_model=VoiceResponse)
async def process_turn(
    request: VoiceRequest,
    service: VoiceService = Depends(get_voice_service),
):
    """
    Process one utterance (voice-transcribed or typed) for a session.
    """
    return await service.process_turn(request.message, request.session_id, request.user_id)
