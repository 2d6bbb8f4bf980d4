from datetime import datetime
from typing import Optional, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.trade_entry import NOTES_MAX_LENGTH, MAX_PROFIT_LOSS


InstrumentType = Literal["FOREX", "CRYPTO", "STOCKS", "FUTURES", "OPTIONS", "COMMODITIES", "INDICES", "OTHER"]
Direction = Literal["LONG", "SHORT"]


class NotesSections(BaseModel):
    """振り返りフォームの各項目"""
    entry_rationale: str = ""
    exit_rationale: str = ""
    learning: str = ""
    risk_management: str = ""
    psychology: str = ""
    retrade_decision: str = ""
    other_remarks: str = ""


class TradeCreate(BaseModel):
    """トレード登録リクエスト（profit_loss_percentage はサーバー側で計算するため受け付けない）"""
    model_config = ConfigDict(allow_inf_nan=False, str_strip_whitespace=True)

    instrument_type: InstrumentType
    instrument_name: str = Field(..., min_length=1, max_length=50)
    direction: Direction
    entry_price: float
    exit_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    quantity: float = Field(..., gt=0)
    position_size: Optional[float] = Field(None, gt=0)
    profit_loss: float = Field(..., gt=-MAX_PROFIT_LOSS, lt=MAX_PROFIT_LOSS)
    entry_date: Optional[datetime] = None
    exit_date: Optional[datetime] = None
    setup_type: Optional[str] = Field(None, max_length=100)
    timeframe: Optional[str] = Field(None, max_length=20)
    risk_reward_ratio: Optional[float] = None
    notes: str = Field("", max_length=NOTES_MAX_LENGTH)
    notes_sections: Optional[NotesSections] = None
    tags: List[str] = Field(default_factory=list)
    image_url: Optional[str] = Field(None, max_length=500)


class TradeUpdate(BaseModel):
    """トレード更新リクエスト（指定されたフィールドのみ更新する）"""
    model_config = ConfigDict(allow_inf_nan=False, str_strip_whitespace=True)

    instrument_type: Optional[InstrumentType] = None
    instrument_name: Optional[str] = Field(None, min_length=1, max_length=50)
    direction: Optional[Direction] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    quantity: Optional[float] = Field(None, gt=0)
    position_size: Optional[float] = Field(None, gt=0)
    profit_loss: Optional[float] = Field(None, gt=-MAX_PROFIT_LOSS, lt=MAX_PROFIT_LOSS)
    entry_date: Optional[datetime] = None
    exit_date: Optional[datetime] = None
    trade_date: Optional[datetime] = None
    setup_type: Optional[str] = Field(None, max_length=100)
    timeframe: Optional[str] = Field(None, max_length=20)
    risk_reward_ratio: Optional[float] = None
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)
    notes_sections: Optional[NotesSections] = None
    tags: Optional[List[str]] = None
    image_url: Optional[str] = Field(None, max_length=500)


class TradeBatchCreate(BaseModel):
    """トレード一括登録リクエスト（時系列順）"""
    trades: List[TradeCreate]
