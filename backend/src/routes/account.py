from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.models.user import User
from src.utils.auth import get_current_user
from src.utils.database import get_db
from src.services.account_service import AccountService
from src.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


class AccountCreateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    initial_balance: Optional[float] = Field(None, gt=0, allow_inf_nan=False)


class BalanceRequest(BaseModel):
    initial_balance: float = Field(..., gt=0, allow_inf_nan=False)


@router.post("", status_code=201)
async def create_account(request: AccountCreateRequest, db: Session = Depends(get_db)):
    """口座を作成する"""
    try:
        service = AccountService(db)
        result = service.create_account(
            name=request.name,
            email=request.email,
            initial_balance=request.initial_balance,
        )

        if "error" in result:
            logger.warning(f"口座作成エラー: {result['error']}")
            raise HTTPException(status_code=400, detail=result["error"])

        return {
            "success": True,
            "data": result,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_account error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("")
async def get_account(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """口座情報を取得する"""
    try:
        service = AccountService(db)
        result = service.get_account_info(user.id)

        return {
            "success": True,
            "data": result,
        }
    except Exception as e:
        logger.error(f"get_account error : {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/balance")
async def set_balance(
    request: BalanceRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """初期資金を設定する"""
    try:
        logger.info(f"初期資金設定リクエスト: user_id={user.id}, initial_balance={request.initial_balance}")
        service = AccountService(db)
        result = service.set_initial_balance(user.id, request.initial_balance)

        if "error" in result:
            raise HTTPException(status_code=400, detail=result["error"])

        return {
            "success": True,
            "data": result,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"set_balance error : {e}")
        raise HTTPException(status_code=500, detail=str(e))
