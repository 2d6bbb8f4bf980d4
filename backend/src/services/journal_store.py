"""
口座・トレード履歴ストア

BalanceRecalculator が参照する読み取り専用のストア。
SQLAlchemyセッション経由でユーザーの初期資金と確定済みトレードを取得する。
"""

import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy.orm import Session

from src.models.user import User
from src.models.trade_entry import TradeEntry


def as_uuid(value) -> uuid.UUID:
    """文字列またはUUIDをUUIDに変換する（不正な値はValueError）"""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class AccountStore:
    """ユーザー口座の読み取りストア"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id) -> Optional[dict]:
        """
        口座情報を取得する

        Args:
            user_id: ユーザーID

        Returns:
            Optional[dict]: {"initial_balance": Decimal | None}、ユーザーが存在しない場合はNone
        """
        user = self.db.query(User).filter(User.id == as_uuid(user_id)).first()
        if not user:
            return None
        return {"initial_balance": user.initial_balance}


class TradeStore:
    """確定済みトレード履歴の読み取りストア"""

    def __init__(self, db: Session):
        self.db = db

    def list_by_user(self, user_id, created_before: Optional[datetime] = None) -> List[dict]:
        """
        ユーザーのトレード履歴を作成日時の昇順で取得する

        Args:
            user_id: ユーザーID
            created_before (datetime, optional): 指定時は、この日時より前に作成されたトレードのみ

        Returns:
            List[dict]: profit_loss と created_at を持つ辞書のリスト
        """
        query = (
            self.db.query(TradeEntry.profit_loss, TradeEntry.created_at)
            .filter(TradeEntry.user_id == as_uuid(user_id))
        )
        if created_before is not None:
            query = query.filter(TradeEntry.created_at < created_before)

        rows = query.order_by(TradeEntry.created_at.asc()).all()
        return [
            {"profit_loss": profit_loss, "created_at": created_at}
            for profit_loss, created_at in rows
        ]
