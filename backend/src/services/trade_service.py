"""
トレード記録サービス

トレードの登録・更新・削除・一覧取得を行う。
登録時は BalanceRecalculator で直前の口座残高に対する損益率を計算し、
トレードと一緒に保存する。損益率の計算に失敗してもトレードの登録は妨げない。

使用例:
    service = TradeService(db)
    result = service.create_trade(user_id, {"instrument_type": "FOREX", ...})
    result = service.get_trades(user_id, page=1, limit=10, outcome="WIN")
"""

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List

from sqlalchemy.orm import Session

from src.models.user import User
from src.models.trade_entry import TradeEntry
from src.services.balance_service import BalanceRecalculator, PercentageResult
from src.services.journal_store import AccountStore, TradeStore, as_uuid
from src.utils.trade_notes import combine_notes, parse_notes
from src.utils.logger import get_logger

logger = get_logger(__name__)


# 並び替えキー（先頭の"-"は降順）
SORT_COLUMNS = {
    "entry_date": TradeEntry.entry_date,
    "exit_date": TradeEntry.exit_date,
    "profit_loss": TradeEntry.profit_loss,
    "created_at": TradeEntry.created_at,
}

# 数値カラム（Decimalに変換して保存する）
DECIMAL_FIELDS = (
    "entry_price", "exit_price", "stop_loss", "take_profit",
    "quantity", "position_size", "profit_loss", "risk_reward_ratio",
)

# 更新可能なフィールド（profit_loss_percentage はサーバー側で計算する）
UPDATABLE_FIELDS = (
    "instrument_type", "instrument_name", "direction",
    "entry_price", "exit_price", "stop_loss", "take_profit",
    "quantity", "position_size", "profit_loss",
    "entry_date", "exit_date", "trade_date",
    "setup_type", "timeframe", "risk_reward_ratio",
    "notes", "tags", "image_url",
)

# NULLにできないフィールド（更新時にNoneが渡された場合は無視する）
REQUIRED_FIELDS = (
    "instrument_type", "instrument_name", "direction",
    "entry_price", "exit_price", "quantity", "profit_loss", "entry_date",
)

# 損益額の保存単位（profit_loss は DECIMAL(15, 2)）
MONEY_QUANTUM = Decimal("0.01")

NOT_FOUND = "Trade not found"
NOT_AUTHORIZED = "Not authorized to access this trade"
USER_NOT_FOUND = "User not found"


def utcnow() -> datetime:
    """UTCの現在時刻（タイムゾーン情報なし）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """タイムゾーン付き日時をUTCのnaive日時に揃える"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def calculate_duration(entry_date: Optional[datetime], exit_date: Optional[datetime]) -> Optional[str]:
    """
    保有期間を表示用の文字列にする

    24時間を超える場合は "2d 3h"、それ以外は "5h 30m" の形式。
    日時が揃っていない場合や決済日時がエントリー日時より前の場合はNone。
    """
    if not entry_date or not exit_date or exit_date < entry_date:
        return None

    total_minutes = int((exit_date - entry_date).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 24:
        return f"{hours // 24}d {hours % 24}h"
    return f"{hours}h {minutes}m"


def _decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def to_money(value) -> Decimal:
    """損益額を保存時と同じ小数点以下2桁に丸める"""
    return Decimal(str(value)).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _float(value) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def trade_to_dict(trade: TradeEntry) -> dict:
    """トレードをAPIレスポンス用の辞書に変換する"""
    return {
        "trade_id": str(trade.id),
        "user_id": str(trade.user_id),
        "instrument_type": trade.instrument_type,
        "instrument_name": trade.instrument_name,
        "direction": trade.direction,
        "entry_price": _float(trade.entry_price),
        "exit_price": _float(trade.exit_price),
        "stop_loss": _float(trade.stop_loss),
        "take_profit": _float(trade.take_profit),
        "quantity": _float(trade.quantity),
        "position_size": _float(trade.position_size),
        "profit_loss": _float(trade.profit_loss),
        "profit_loss_percentage": _float(trade.profit_loss_percentage),
        "entry_date": _iso(trade.entry_date),
        "exit_date": _iso(trade.exit_date),
        "trade_date": _iso(trade.trade_date),
        "duration": trade.duration,
        "setup_type": trade.setup_type,
        "timeframe": trade.timeframe,
        "risk_reward_ratio": _float(trade.risk_reward_ratio),
        "notes": trade.notes,
        "notes_sections": parse_notes(trade.notes),
        "tags": list(trade.tags or []),
        "image_url": trade.image_url,
        "created_at": _iso(trade.created_at),
        "updated_at": _iso(trade.updated_at),
    }


class TradeService:
    """
    トレード記録サービスクラス

    Attributes:
        db (Session): SQLAlchemyデータベースセッション
        calculator (BalanceRecalculator): 損益率の計算に使用する
    """

    def __init__(self, db: Session, calculator: Optional[BalanceRecalculator] = None):
        """
        TradeServiceを初期化する

        Args:
            db (Session): SQLAlchemyデータベースセッション
            calculator (BalanceRecalculator, optional): 省略時はDBを参照するストアで生成
        """
        self.db = db
        self.calculator = calculator or BalanceRecalculator(AccountStore(db), TradeStore(db))

    def _get_user(self, user_id) -> Optional[User]:
        return self.db.query(User).filter(User.id == as_uuid(user_id)).first()

    def _get_owned_trade(self, user_id, trade_id) -> tuple:
        """
        ユーザーが所有するトレードを取得する（内部メソッド）

        Returns:
            tuple: (TradeEntry, None) または (None, エラーメッセージ)
        """
        try:
            trade_uuid = as_uuid(trade_id)
        except ValueError:
            return None, NOT_FOUND

        trade = self.db.query(TradeEntry).filter(TradeEntry.id == trade_uuid).first()
        if not trade:
            return None, NOT_FOUND
        if trade.user_id != as_uuid(user_id):
            return None, NOT_AUTHORIZED
        return trade, None

    def _next_created_at(self, user_id, count: int) -> List[datetime]:
        """
        新規トレードの作成日時を採番する（内部メソッド）

        既存トレードより後、かつ入力順に厳密に増加する日時を返す。
        残高の再計算は作成日時の順序のみに依存するため、同時刻の重複を避ける。
        """
        base = utcnow()
        latest = (
            self.db.query(TradeEntry.created_at)
            .filter(TradeEntry.user_id == as_uuid(user_id))
            .order_by(TradeEntry.created_at.desc())
            .first()
        )
        if latest and latest[0] and latest[0] >= base:
            base = latest[0] + timedelta(microseconds=1)
        return [base + timedelta(microseconds=i) for i in range(count)]

    def _build_entry(self, user_id, data: dict, percentage: float, created_at: datetime) -> TradeEntry:
        now = utcnow()
        entry_date = naive_utc(data.get("entry_date")) or now
        exit_date = naive_utc(data.get("exit_date")) or now
        quantity = data.get("quantity")

        if data.get("notes_sections"):
            notes = combine_notes(data["notes_sections"])
        else:
            notes = data.get("notes") or ""

        return TradeEntry(
            user_id=as_uuid(user_id),
            instrument_type=data["instrument_type"],
            instrument_name=data["instrument_name"].strip(),
            direction=data["direction"],
            entry_price=_decimal(data["entry_price"]),
            exit_price=_decimal(data["exit_price"]),
            stop_loss=_decimal(data.get("stop_loss")),
            take_profit=_decimal(data.get("take_profit")),
            quantity=_decimal(quantity),
            position_size=_decimal(data.get("position_size") or quantity),
            profit_loss=_decimal(data["profit_loss"]),
            profit_loss_percentage=Decimal(str(percentage)),
            entry_date=entry_date,
            exit_date=exit_date,
            trade_date=naive_utc(data.get("trade_date")) or entry_date,
            duration=calculate_duration(entry_date, exit_date),
            setup_type=data.get("setup_type"),
            timeframe=data.get("timeframe"),
            risk_reward_ratio=_decimal(data.get("risk_reward_ratio")),
            notes=notes,
            tags=list(data.get("tags") or []),
            image_url=data.get("image_url") or "",
            created_at=created_at,
            updated_at=created_at,
        )

    def _log_degraded(self, user_id, result: PercentageResult) -> None:
        if result.is_degraded:
            logger.warning(
                f"損益率を0で登録します: user_id={user_id}, reason={result.reason}, detail={result.detail}"
            )

    def get_trades(
        self,
        user_id,
        page: int = 1,
        limit: int = 10,
        sort: str = "-entry_date",
        instrument_name: Optional[str] = None,
        direction: Optional[str] = None,
        outcome: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        """
        トレード一覧を取得する

        Args:
            user_id: ユーザーID
            page (int): ページ番号（1始まり）
            limit (int): 1ページあたりの件数
            sort (str): 並び替えキー（"-entry_date" のように "-" で降順）
            instrument_name (str, optional): 銘柄名の部分一致（大文字小文字を区別しない）
            direction (str, optional): "LONG" / "SHORT"（"ALL" は絞り込みなし）
            outcome (str, optional): "WIN" / "LOSS" / "BREAKEVEN"（"ALL" は絞り込みなし）
            start_date (datetime, optional): エントリー日時の下限
            end_date (datetime, optional): エントリー日時の上限

        Returns:
            dict: トレード一覧とページ情報
                - trades, total, page, total_pages, has_next_page, has_prev_page
                エラー時は {"error": "エラーメッセージ"}
        """
        descending = sort.startswith("-")
        column = SORT_COLUMNS.get(sort.lstrip("-"))
        if column is None:
            return {"error": f"Unsupported sort key: {sort}"}

        query = self.db.query(TradeEntry).filter(TradeEntry.user_id == as_uuid(user_id))

        if instrument_name:
            query = query.filter(TradeEntry.instrument_name.ilike(f"%{instrument_name}%"))
        if direction and direction != "ALL":
            query = query.filter(TradeEntry.direction == direction)
        if outcome == "WIN":
            query = query.filter(TradeEntry.profit_loss > 0)
        elif outcome == "LOSS":
            query = query.filter(TradeEntry.profit_loss < 0)
        elif outcome == "BREAKEVEN":
            query = query.filter(TradeEntry.profit_loss == 0)
        if start_date:
            query = query.filter(TradeEntry.entry_date >= naive_utc(start_date))
        if end_date:
            query = query.filter(TradeEntry.entry_date <= naive_utc(end_date))

        total = query.count()
        order = column.desc() if descending else column.asc()
        trades = (
            query.order_by(order, TradeEntry.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        total_pages = math.ceil(total / limit) if limit else 0

        return {
            "trades": [trade_to_dict(t) for t in trades],
            "total": total,
            "page": page,
            "total_pages": total_pages,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
        }

    def get_trade(self, user_id, trade_id) -> dict:
        """
        トレード詳細を取得する

        Returns:
            dict: トレード情報、エラー時は {"error": "エラーメッセージ"}
        """
        trade, error = self._get_owned_trade(user_id, trade_id)
        if error:
            return {"error": error}
        return trade_to_dict(trade)

    def create_trade(self, user_id, data: dict) -> dict:
        """
        トレードを1件登録する

        現在の口座残高に対する損益率を計算して保存する。
        損益率を計算できなかった場合は0で保存し、警告ログを出力する。

        Args:
            user_id: ユーザーID
            data (dict): トレード情報（profit_loss_percentage は無視される）

        Returns:
            dict: 登録したトレード情報（percentage_status に算出経路を含む）
                エラー時は {"error": "エラーメッセージ"}
        """
        if not self._get_user(user_id):
            return {"error": USER_NOT_FOUND}

        # 保存される金額で損益率を計算する
        data = {**data, "profit_loss": to_money(data["profit_loss"])}
        result = self.calculator.single_trade_percentage(data["profit_loss"], user_id)
        self._log_degraded(user_id, result)

        created_at = self._next_created_at(user_id, 1)[0]
        entry = self._build_entry(user_id, data, result.value, created_at)
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)

        logger.info(
            f"トレードを登録しました: trade_id={entry.id}, profit_loss={entry.profit_loss}, "
            f"profit_loss_percentage={entry.profit_loss_percentage}"
        )
        response = trade_to_dict(entry)
        response["percentage_status"] = "degraded" if result.is_degraded else "computed"
        return response

    def create_trades(self, user_id, trades: List[dict]) -> dict:
        """
        複数のトレードを入力順に一括登録する

        損益率は BalanceRecalculator.batch_trade_percentages で、
        前のトレードの損益を積み上げた残高を基準に計算する。

        Args:
            user_id: ユーザーID
            trades (List[dict]): トレード情報のリスト（時系列順）

        Returns:
            dict: 登録結果
                - trades (list): 登録したトレード
                - imported_count (int): 登録件数
                - degraded_count (int): 損益率を0で代替した件数
                エラー時は {"error": "エラーメッセージ"}
        """
        if not self._get_user(user_id):
            return {"error": USER_NOT_FOUND}
        if not trades:
            return {"trades": [], "imported_count": 0, "degraded_count": 0}

        trades = [{**trade, "profit_loss": to_money(trade["profit_loss"])} for trade in trades]

        batch = self.calculator.batch_trade_percentages(trades, user_id)
        for result in batch.results:
            self._log_degraded(user_id, result)

        created_ats = self._next_created_at(user_id, len(batch.trades))
        entries = [
            self._build_entry(user_id, trade, trade["profit_loss_percentage"], created_at)
            for trade, created_at in zip(batch.trades, created_ats)
        ]
        self.db.add_all(entries)
        self.db.commit()
        for entry in entries:
            self.db.refresh(entry)

        degraded_count = sum(1 for r in batch.results if r.is_degraded)
        logger.info(f"トレードを一括登録しました: user_id={user_id}, count={len(entries)}, degraded={degraded_count}")
        return {
            "trades": [trade_to_dict(e) for e in entries],
            "imported_count": len(entries),
            "degraded_count": degraded_count,
        }

    def update_trade(self, user_id, trade_id, data: dict) -> dict:
        """
        トレードを更新する

        損益額が変更された場合は、このトレードより前に作成されたトレードのみで
        再現した残高を基準に損益率を再計算する。
        後続トレードの損益率は再計算しない。

        Args:
            user_id: ユーザーID
            trade_id: トレードID
            data (dict): 変更するフィールドのみを含む辞書

        Returns:
            dict: 更新後のトレード情報、エラー時は {"error": "エラーメッセージ"}
        """
        trade, error = self._get_owned_trade(user_id, trade_id)
        if error:
            return {"error": error}

        for field in UPDATABLE_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if value is None and field in REQUIRED_FIELDS:
                continue
            if field == "profit_loss":
                value = to_money(value)
            elif field in DECIMAL_FIELDS:
                value = _decimal(value)
            elif field in ("entry_date", "exit_date", "trade_date"):
                value = naive_utc(value)
            elif field == "tags":
                value = list(value or [])
            elif field == "notes":
                value = value or ""
            setattr(trade, field, value)

        if data.get("notes_sections") is not None:
            trade.notes = combine_notes(data["notes_sections"])

        if "profit_loss" in data and data["profit_loss"] is not None:
            result = self.calculator.single_trade_percentage(
                trade.profit_loss, user_id, created_before=trade.created_at
            )
            self._log_degraded(user_id, result)
            trade.profit_loss_percentage = Decimal(str(result.value))

        trade.duration = calculate_duration(trade.entry_date, trade.exit_date)
        trade.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(trade)

        logger.info(f"トレードを更新しました: trade_id={trade.id}")
        return trade_to_dict(trade)

    def delete_trade(self, user_id, trade_id) -> dict:
        """
        トレードを削除する

        後続トレードの損益率は再計算しない。

        Returns:
            dict: {"trade_id": ...}、エラー時は {"error": "エラーメッセージ"}
        """
        trade, error = self._get_owned_trade(user_id, trade_id)
        if error:
            return {"error": error}

        self.db.delete(trade)
        self.db.commit()
        logger.info(f"トレードを削除しました: trade_id={trade_id}")
        return {"trade_id": str(trade_id)}
