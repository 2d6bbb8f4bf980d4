"""
口座管理サービス

ユーザー口座の作成、初期資金の設定、口座情報（現在残高等）の取得を行う。
初期資金を変更しても登録済みトレードの損益率は再計算しない。

使用例:
    service = AccountService(db)
    account = service.create_account(name="taro", initial_balance=10000)
    info = service.get_account_info(account["user_id"])
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models.user import User
from src.models.trade_entry import TradeEntry
from src.services.journal_store import as_uuid
from src.utils.config import DEFAULT_INITIAL_BALANCE
from src.utils.logger import get_logger

logger = get_logger(__name__)


class AccountService:
    """
    口座管理サービスクラス

    Attributes:
        db (Session): SQLAlchemyデータベースセッション
        default_initial_balance (Decimal): 初期資金が未設定の場合に使う値
    """

    def __init__(self, db: Session, default_initial_balance=DEFAULT_INITIAL_BALANCE):
        self.db = db
        self.default_initial_balance = Decimal(str(default_initial_balance))

    def _effective_initial_balance(self, user: User) -> Decimal:
        # 未設定（None・0）の場合はデフォルト値
        return user.initial_balance or self.default_initial_balance

    def create_account(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        initial_balance: Optional[float] = None,
    ) -> dict:
        """
        口座を作成する

        Args:
            name (str, optional): 表示名
            email (str, optional): メールアドレス（一意）
            initial_balance (float, optional): 初期資金。省略時はデフォルト値

        Returns:
            dict: 口座情報、エラー時は {"error": "エラーメッセージ"}
        """
        if email and self.db.query(User).filter(User.email == email).first():
            return {"error": "Email already registered"}

        user = User(
            name=name,
            email=email,
            initial_balance=Decimal(str(initial_balance)) if initial_balance else self.default_initial_balance,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"口座を作成しました: user_id={user.id}, initial_balance={user.initial_balance}")
        return self.get_account_info(user.id)

    def get_account_info(self, user_id) -> dict:
        """
        口座情報を取得する

        現在残高は初期資金に全トレードの損益を加算して求める。

        Returns:
            dict: 口座情報
                - user_id, name, email
                - initial_balance (float): 初期資金
                - net_profit_loss (float): 確定損益の合計
                - current_balance (float): 現在残高
                - total_trades (int): トレード件数
                エラー時は {"error": "エラーメッセージ"}
        """
        user = self.db.query(User).filter(User.id == as_uuid(user_id)).first()
        if not user:
            return {"error": "User not found"}

        net_profit_loss, total_trades = (
            self.db.query(
                func.coalesce(func.sum(TradeEntry.profit_loss), 0),
                func.count(TradeEntry.id),
            )
            .filter(TradeEntry.user_id == user.id)
            .one()
        )
        initial_balance = Decimal(str(self._effective_initial_balance(user)))
        net_profit_loss = Decimal(str(net_profit_loss))

        return {
            "user_id": str(user.id),
            "name": user.name,
            "email": user.email,
            "initial_balance": float(initial_balance),
            "net_profit_loss": float(net_profit_loss),
            "current_balance": float(initial_balance + net_profit_loss),
            "total_trades": total_trades,
        }

    def set_initial_balance(self, user_id, initial_balance: float) -> dict:
        """
        初期資金を変更する

        Args:
            user_id: ユーザーID
            initial_balance (float): 新しい初期資金（正の値）

        Returns:
            dict: 更新後の口座情報、エラー時は {"error": "エラーメッセージ"}
        """
        if initial_balance <= 0:
            return {"error": "Initial balance must be positive"}

        user = self.db.query(User).filter(User.id == as_uuid(user_id)).first()
        if not user:
            return {"error": "User not found"}

        user.initial_balance = Decimal(str(initial_balance))
        self.db.commit()
        logger.info(f"初期資金を変更しました: user_id={user.id}, initial_balance={initial_balance}")
        return self.get_account_info(user.id)
