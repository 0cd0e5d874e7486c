from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..auth import CurrentUser, get_current_user, get_services

router = APIRouter(prefix="/api/watchlist", tags=["Watchlist"])


class AddWatchlistRequest(BaseModel):
    coinId: Optional[int] = None
    symbol: Optional[str] = None


def parse_int_id(value: str, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


@router.get("")
async def list_watchlist(
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    return await services.watchlist.list_items(user.id)


@router.post("", status_code=201)
async def add_to_watchlist(
    payload: AddWatchlistRequest,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    coin_id = payload.coinId
    if coin_id is None:
        symbol = (payload.symbol or "").strip()
        if not symbol:
            raise HTTPException(status_code=400, detail="coinId or symbol is required")
        coin_id = await services.watchlist.resolve_coin_id(symbol)
        if coin_id is None:
            raise HTTPException(status_code=404, detail="Coin not found")

    await services.watchlist.add(user.id, coin_id)
    return {"status": "added", "coinId": coin_id}


@router.delete("/{coin_id}")
async def remove_from_watchlist(
    coin_id: str,
    user: CurrentUser = Depends(get_current_user),
    services=Depends(get_services),
):
    await services.watchlist.remove(user.id, parse_int_id(coin_id, "coin ID"))
    return {"status": "removed"}
