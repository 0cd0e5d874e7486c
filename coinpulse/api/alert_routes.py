"""
告警 API
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator

from ..auth import CurrentUser, get_current_user, get_services
from ..services.alert_service import CONDITION_TYPES, NOTIFICATION_TYPES
from .watchlist_routes import parse_int_id

router = APIRouter(prefix="/api/alerts", tags=["Alerts"])

HISTORY_LIMIT = 100


class CreateAlertRequest(BaseModel):
    coinId: int
    conditionType: str
    conditionValue: float
    notificationType: str = "in_app"

    @field_validator("conditionType")
    @classmethod
    def validate_condition_type(cls, v):
        if v not in CONDITION_TYPES:
            raise ValueError(f"conditionType must be one of {', '.join(CONDITION_TYPES)}")
        return v

    @field_validator("notificationType")
    @classmethod
    def validate_notification_type(cls, v):
        v = v or "in_app"
        if v not in NOTIFICATION_TYPES:
            raise ValueError(f"notificationType must be one of {', '.join(NOTIFICATION_TYPES)}")
        return v


class UpdateAlertRequest(BaseModel):
    isActive: Optional[bool] = None
    conditionValue: Optional[float] = None
    notificationType: Optional[str] = None

    @field_validator("notificationType")
    @classmethod
    def validate_notification_type(cls, v):
        if v is not None and v not in NOTIFICATION_TYPES:
            raise ValueError(f"notificationType must be one of {', '.join(NOTIFICATION_TYPES)}")
        return v


@router.get("")
async def list_alerts(
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    return await services.alerts.list_alerts(user.id)


@router.post("", status_code=201)
async def create_alert(
    payload: CreateAlertRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    if not await services.alerts.coin_exists(payload.coinId):
        raise HTTPException(status_code=404, detail="Coin not found")
    return await services.alerts.create_alert(
        user.id,
        payload.coinId,
        payload.conditionType,
        payload.conditionValue,
        payload.notificationType,
    )


@router.put("/{alert_id}")
async def update_alert(
    alert_id: str,
    payload: UpdateAlertRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    alert = await services.alerts.update_alert(
        user.id,
        parse_int_id(alert_id, "alert ID"),
        is_active=payload.isActive,
        condition_value=payload.conditionValue,
        notification_type=payload.notificationType,
    )
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.delete("/{alert_id}")
async def delete_alert(
    alert_id: str,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    if not await services.alerts.delete_alert(user.id, parse_int_id(alert_id, "alert ID")):
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"status": "deleted"}


@router.get("/{alert_id}/history")
async def get_alert_history(
    alert_id: str,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    aid = parse_int_id(alert_id, "alert ID")
    if await services.alerts.get_alert(user.id, aid) is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return await services.alerts.get_history(user.id, aid, limit=HISTORY_LIMIT)
