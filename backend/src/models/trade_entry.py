from sqlalchemy import Column, String, Text, DECIMAL, TIMESTAMP, JSON, ForeignKey, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid

from src.utils.database import Base


INSTRUMENT_TYPES = ("FOREX", "CRYPTO", "STOCKS", "FUTURES", "OPTIONS", "COMMODITIES", "INDICES", "OTHER")
DIRECTIONS = ("LONG", "SHORT")
NOTES_MAX_LENGTH = 10000
# profit_loss（DECIMAL(15, 2)）に保存できる絶対値の上限
MAX_PROFIT_LOSS = 10 ** 13


class TradeEntry(Base):
    __tablename__ = "trade_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    instrument_type = Column(String(20), nullable=False)
    instrument_name = Column(String(50), nullable=False)
    direction = Column(String(10), nullable=False)
    entry_price = Column(DECIMAL(18, 8), nullable=False)
    exit_price = Column(DECIMAL(18, 8), nullable=False)
    stop_loss = Column(DECIMAL(18, 8), nullable=True)
    take_profit = Column(DECIMAL(18, 8), nullable=True)
    quantity = Column(DECIMAL(18, 8), nullable=False)
    position_size = Column(DECIMAL(18, 8), nullable=True)
    profit_loss = Column(DECIMAL(15, 2), nullable=False)
    # 直前の口座残高に対する損益率（%）。クライアントからは設定不可
    # 残高0.01に対する最大損益でも収まる桁数（整数部20桁）
    profit_loss_percentage = Column(DECIMAL(24, 4), nullable=False, default=0)
    entry_date = Column(TIMESTAMP, nullable=False)
    exit_date = Column(TIMESTAMP, nullable=True)
    trade_date = Column(TIMESTAMP, nullable=True)
    duration = Column(String(20), nullable=True)
    setup_type = Column(String(100), nullable=True)
    timeframe = Column(String(20), nullable=True)
    risk_reward_ratio = Column(DECIMAL(10, 2), nullable=True)
    notes = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    image_url = Column(String(500), nullable=True)
    # 残高再計算の時系列キー
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User", backref="trades")

    __table_args__ = (
        CheckConstraint("direction IN ('LONG', 'SHORT')", name="chk_trade_entries_direction"),
        CheckConstraint(
            "instrument_type IN ('FOREX', 'CRYPTO', 'STOCKS', 'FUTURES', 'OPTIONS', 'COMMODITIES', 'INDICES', 'OTHER')",
            name="chk_trade_entries_instrument_type",
        ),
        Index("idx_trade_entries_user_id_created_at", "user_id", "created_at"),
        Index("idx_trade_entries_entry_date", "entry_date"),
    )
