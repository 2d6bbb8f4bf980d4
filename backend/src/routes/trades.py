import io
import json
from datetime import datetime
from typing import Optional, Literal
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, UploadFile, File, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from src.models.user import User
from src.schemas.trade_schema import TradeCreate, TradeUpdate, TradeBatchCreate
from src.utils.auth import get_current_user
from src.utils.database import get_db
from src.services.trade_service import TradeService, NOT_FOUND, NOT_AUTHORIZED
from src.services.trade_import_service import TradeImportService
from src.services.chart_image_service import ChartImageService
from src.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


ERROR_STATUS = {
    NOT_FOUND: 404,
    NOT_AUTHORIZED: 403,
}


def _raise_for_error(result: dict, default_status: int = 400) -> None:
    if "error" in result:
        status = ERROR_STATUS.get(result["error"], default_status)
        logger.warning(f"トレードAPIエラー: status={status}, error={result['error']}")
        raise HTTPException(status_code=status, detail=result["error"])


@router.get("")
async def get_trades(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=1000),
    sort: str = Query("-entry_date"),
    instrument_name: Optional[str] = Query(None),
    direction: Optional[Literal["LONG", "SHORT", "ALL"]] = Query(None),
    outcome: Optional[Literal["WIN", "LOSS", "BREAKEVEN", "ALL"]] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレード一覧を取得する"""
    try:
        service = TradeService(db)
        result = service.get_trades(
            user.id,
            page=page,
            limit=limit,
            sort=sort,
            instrument_name=instrument_name,
            direction=direction,
            outcome=outcome,
            start_date=start_date,
            end_date=end_date,
        )
        _raise_for_error(result)

        return {
            "success": True,
            "data": result,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"get_trades error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/export")
async def export_trades(
    format: str = Query("csv", pattern="^(csv|json)$", description="エクスポート形式（csv/json）"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレード履歴をCSVまたはJSONで出力する"""
    service = TradeImportService(db)
    current_date = datetime.now().strftime('%Y%m%d')

    if format == "json":
        filename = quote(f"trade_journal_{current_date}.json")
        content = json.dumps(service.export_json(user.id), ensure_ascii=False, indent=2)
        return StreamingResponse(
            io.BytesIO(content.encode('utf-8')),
            media_type="application/json; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
        )

    filename = quote(f"trade_journal_{current_date}.csv")
    return StreamingResponse(
        io.StringIO(service.export_csv(user.id)),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@router.post("/import", status_code=201)
async def import_trades(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレード履歴をインポートする（CSV/JSON）"""
    try:
        content = await file.read()
        service = TradeImportService(db)
        result = service.import_file(user.id, file.filename, content)

        if "error" in result:
            logger.warning(f"インポートエラー: {result['error']}")
            raise HTTPException(
                status_code=400,
                detail={"message": result["error"], "rows": result.get("details", [])},
            )

        return {
            "success": True,
            "data": {
                "imported_count": result["imported_count"],
                "degraded_count": result["degraded_count"],
                "trades": result["trades"],
                "message": f"{result['imported_count']}件のトレードをインポートしました",
            },
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"import_trades error : {e}")
        raise HTTPException(status_code=500, detail=f"インポートに失敗しました: {str(e)}")


@router.post("/batch", status_code=201)
async def create_trades(
    request: TradeBatchCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレードを一括登録する（リクエストの順序で損益率を計算）"""
    try:
        service = TradeService(db)
        result = service.create_trades(user.id, [t.model_dump() for t in request.trades])
        _raise_for_error(result)

        return {
            "success": True,
            "data": result,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_trades error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/upload")
async def upload_chart_image(
    image: UploadFile = File(...),
    user: User = Depends(get_current_user),
):
    """チャート画像をアップロードする"""
    content = await image.read()
    result = ChartImageService().save(image.filename, content)
    if "error" in result:
        raise HTTPException(status_code=400, detail=result["error"])

    return {
        "success": True,
        "data": result,
    }


@router.get("/{trade_id}")
async def get_trade(
    trade_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレード詳細を取得する"""
    service = TradeService(db)
    result = service.get_trade(user.id, trade_id)
    _raise_for_error(result)

    return {
        "success": True,
        "data": result,
    }


@router.post("", status_code=201)
async def create_trade(
    request: TradeCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレードを登録する"""
    try:
        service = TradeService(db)
        result = service.create_trade(user.id, request.model_dump())
        _raise_for_error(result)

        return {
            "success": True,
            "data": result,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_trade error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{trade_id}")
async def update_trade(
    trade_id: str,
    request: TradeUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレードを更新する"""
    try:
        service = TradeService(db)
        result = service.update_trade(user.id, trade_id, request.model_dump(exclude_unset=True))
        _raise_for_error(result)

        return {
            "success": True,
            "data": result,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"update_trade error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{trade_id}")
async def delete_trade(
    trade_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """トレードを削除する"""
    service = TradeService(db)
    result = service.delete_trade(user.id, trade_id)
    _raise_for_error(result)

    return {
        "success": True,
        "data": result,
    }
