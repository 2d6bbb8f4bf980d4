from datetime import datetime
from typing import Optional, Literal

from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy.orm import Session

from src.models.user import User
from src.utils.auth import get_current_user
from src.utils.database import get_db
from src.services.metrics_service import MetricsService
from src.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("/summary")
async def get_summary(
    instrument_type: Optional[str] = Query(None),
    instrument_name: Optional[str] = Query(None),
    timeframe: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """成績サマリーを取得する"""
    try:
        service = MetricsService(db)
        result = service.get_summary(
            user.id,
            instrument_type=instrument_type,
            instrument_name=instrument_name,
            timeframe=timeframe,
            start_date=start_date,
            end_date=end_date,
        )

        return {
            "success": True,
            "data": result,
        }
    except Exception as e:
        logger.error(f"get_summary error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/performance")
async def get_performance(
    period: Literal["daily", "weekly", "monthly"] = Query("monthly"),
    instrument_type: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """期間別の成績推移を取得する"""
    try:
        service = MetricsService(db)
        result = service.get_performance(
            user.id,
            period=period,
            instrument_type=instrument_type,
            start_date=start_date,
            end_date=end_date,
        )

        return {
            "success": True,
            "data": result,
        }
    except Exception as e:
        logger.error(f"get_performance error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/instruments")
async def get_instruments(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """銘柄別の成績を取得する"""
    try:
        service = MetricsService(db)
        return {
            "success": True,
            "data": service.get_instruments(user.id),
        }
    except Exception as e:
        logger.error(f"get_instruments error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/equity-curve")
async def get_equity_curve(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """資産曲線データを取得する"""
    try:
        service = MetricsService(db)
        return {
            "success": True,
            "data": service.get_equity_curve(user.id),
        }
    except Exception as e:
        logger.error(f"get_equity_curve error : {e}")
        raise HTTPException(status_code=500, detail=str(e))
