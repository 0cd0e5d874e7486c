"""
AI 服务商管理与聊天 API
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..auth import CurrentUser, get_current_user, get_services
from ..exchange import UpstreamError
from ..services.ai_provider_service import NO_PROVIDER_MESSAGE
from .watchlist_routes import parse_int_id

router = APIRouter(prefix="/api/ai", tags=["AI"])
logger = logging.getLogger(__name__)


class CreateProviderRequest(BaseModel):
    providerType: str = Field(..., min_length=1)
    providerName: str = Field(..., min_length=1)
    apiKey: str = Field(..., min_length=1)
    modelName: str = Field(..., min_length=1)
    maxTokens: Optional[int] = None
    temperature: Optional[float] = None
    isDefault: bool = False
    monthlyBudget: Optional[float] = None


class UpdateProviderRequest(BaseModel):
    providerName: Optional[str] = None
    apiKey: Optional[str] = None
    modelName: Optional[str] = None
    maxTokens: Optional[int] = None
    temperature: Optional[float] = None
    isActive: Optional[bool] = None
    isDefault: Optional[bool] = None
    monthlyBudget: Optional[float] = None


class FetchModelsRequest(BaseModel):
    providerType: str = Field(..., min_length=1)
    apiKey: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    providerId: Optional[int] = None
    conversationId: Optional[str] = None


# ============================================
# 服务商配置
# ============================================

@router.get("/providers")
async def list_providers(
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    return await services.ai_providers.list_providers(user.id)


@router.post("/providers", status_code=201)
async def create_provider(
    payload: CreateProviderRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    provider_id = await services.ai_providers.create_provider(
        user.id,
        payload.providerType.strip().lower(),
        payload.providerName,
        payload.apiKey,
        payload.modelName,
        max_tokens=payload.maxTokens,
        temperature=payload.temperature,
        is_default=payload.isDefault,
        monthly_budget=payload.monthlyBudget,
    )
    return {"id": provider_id, "message": "AI provider added successfully"}


@router.post("/providers/fetch-models")
async def fetch_models(
    payload: FetchModelsRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """用未保存的 API Key 拉取模型列表"""
    try:
        return await services.ai_providers.fetch_models(payload.providerType.strip().lower(), payload.apiKey)
    except UpstreamError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/providers/{provider_id}")
async def update_provider(
    provider_id: str,
    payload: UpdateProviderRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    changes = {
        "provider_name": payload.providerName,
        "api_key": payload.apiKey,
        "model_name": payload.modelName,
        "max_tokens": payload.maxTokens,
        "temperature": payload.temperature,
        "is_active": payload.isActive,
        "is_default": payload.isDefault,
        "monthly_budget": payload.monthlyBudget,
    }
    updated = await services.ai_providers.update_provider(
        user.id, parse_int_id(provider_id, "provider ID"), changes
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Provider not found")
    return {"status": "updated"}


@router.delete("/providers/{provider_id}")
async def delete_provider(
    provider_id: str,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    if not await services.ai_providers.delete_provider(user.id, parse_int_id(provider_id, "provider ID")):
        raise HTTPException(status_code=404, detail="Provider not found")
    return {"status": "deleted"}


async def _load_credentials(services, user: CurrentUser, provider_id: str):
    creds = await services.ai_providers.get_credentials(user.id, parse_int_id(provider_id, "provider ID"))
    if creds is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    if not creds.api_key:
        raise HTTPException(status_code=400, detail="No API key configured for this provider")
    return creds


@router.post("/providers/{provider_id}/test")
async def test_provider(
    provider_id: str,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    creds = await _load_credentials(services, user, provider_id)
    try:
        return await services.ai_providers.test_provider(creds)
    except UpstreamError as e:
        raise HTTPException(status_code=400, detail=f"Connection test failed: {e}")


@router.get("/providers/{provider_id}/models")
async def list_provider_models(
    provider_id: str,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    creds = await _load_credentials(services, user, provider_id)
    try:
        return await services.ai_providers.fetch_models(creds.provider_type, creds.api_key, creds.api_endpoint)
    except UpstreamError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============================================
# 聊天
# ============================================

@router.post("/chat")
async def chat(
    payload: ChatRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    creds = await services.ai_providers.resolve_for_chat(user.id, payload.providerId)
    if creds is None:
        return {"response": NO_PROVIDER_MESSAGE}

    try:
        response = await services.ai_providers.chat(creds, payload.message)
    except UpstreamError as e:
        logger.warning(f"AI 调用失败 provider={creds.provider_type}: {e}")
        raise HTTPException(status_code=500, detail=f"AI call failed: {e}")

    return {
        "response": response,
        "provider": creds.provider_type,
        "model": creds.model_name,
    }


@router.get("/conversations")
async def list_conversations(user: CurrentUser = Depends(get_current_user)):
    return []
