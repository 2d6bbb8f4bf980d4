"""
トレード成績分析サービス

トレード履歴と初期資金を元に、成績指標を計算する。
勝率、プロフィットファクター、期間別成績、銘柄別成績、資産曲線等を提供する。

使用例:
    service = MetricsService(db)
    summary = service.get_summary(user_id)
    monthly = service.get_performance(user_id, period="monthly")
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict

from sqlalchemy.orm import Session

from src.models.user import User
from src.models.trade_entry import TradeEntry
from src.services.journal_store import as_uuid
from src.services.trade_service import naive_utc
from src.utils.config import DEFAULT_INITIAL_BALANCE


PERIODS = ("daily", "weekly", "monthly")


def calculate_metrics(trades: List[TradeEntry]) -> dict:
    """
    トレードの基本指標を計算する

    損失額（total_loss、average_loss、largest_loss）は絶対値で返す。
    損失がない場合のプロフィットファクターは総利益とする。

    Args:
        trades (List[TradeEntry]): 対象トレード

    Returns:
        dict: 基本指標
    """
    metrics = {
        "total_trades": len(trades),
        "winning_trades": 0,
        "losing_trades": 0,
        "breakeven_trades": 0,
        "win_rate": 0.0,
        "total_profit": 0.0,
        "total_loss": 0.0,
        "net_profit_loss": 0.0,
        "profit_factor": 0.0,
        "average_win": 0.0,
        "average_loss": 0.0,
        "largest_win": 0.0,
        "largest_loss": 0.0,
        "average_rrr": 0.0,
        "average_holding_time": 0.0,
    }
    if not trades:
        return metrics

    total_win = 0.0
    total_loss = 0.0
    rrr_values = []
    holding_seconds = []

    for trade in trades:
        pnl = float(trade.profit_loss)
        if pnl > 0:
            metrics["winning_trades"] += 1
            total_win += pnl
            metrics["largest_win"] = max(metrics["largest_win"], pnl)
        elif pnl < 0:
            metrics["losing_trades"] += 1
            total_loss += abs(pnl)
            metrics["largest_loss"] = max(metrics["largest_loss"], abs(pnl))
        else:
            metrics["breakeven_trades"] += 1

        if trade.risk_reward_ratio:
            rrr_values.append(float(trade.risk_reward_ratio))

        if trade.entry_date and trade.exit_date:
            holding_seconds.append((trade.exit_date - trade.entry_date).total_seconds())

    metrics["win_rate"] = metrics["winning_trades"] / metrics["total_trades"] * 100
    metrics["total_profit"] = total_win
    metrics["total_loss"] = total_loss
    metrics["net_profit_loss"] = total_win - total_loss
    metrics["profit_factor"] = total_win / total_loss if total_loss > 0 else total_win
    metrics["average_win"] = total_win / metrics["winning_trades"] if metrics["winning_trades"] else 0.0
    metrics["average_loss"] = total_loss / metrics["losing_trades"] if metrics["losing_trades"] else 0.0
    metrics["average_rrr"] = sum(rrr_values) / len(rrr_values) if rrr_values else 0.0
    # 平均保有時間（時間単位）
    metrics["average_holding_time"] = (
        sum(holding_seconds) / len(holding_seconds) / 3600 if holding_seconds else 0.0
    )
    return metrics


def calculate_consecutive(trades: List[TradeEntry]) -> dict:
    """
    最大連勝数と最大連敗数を計算する

    Args:
        trades (List[TradeEntry]): 時系列順のトレード

    Returns:
        dict: max_consecutive_wins, max_consecutive_losses
    """
    max_wins = 0
    max_losses = 0
    current_wins = 0
    current_losses = 0

    for trade in trades:
        pnl = float(trade.profit_loss)
        if pnl > 0:
            current_wins += 1
            current_losses = 0
            max_wins = max(max_wins, current_wins)
        elif pnl < 0:
            current_losses += 1
            current_wins = 0
            max_losses = max(max_losses, current_losses)
        else:
            # 損益ゼロの場合は連続をリセット
            current_wins = 0
            current_losses = 0

    return {
        "max_consecutive_wins": max_wins,
        "max_consecutive_losses": max_losses,
    }


def period_key(date: datetime, period: str) -> str:
    """
    集計期間のキーを返す

    daily: "2024-01-15"、weekly: その週の日曜日の日付、monthly: "2024-01"
    """
    if period == "daily":
        return date.strftime("%Y-%m-%d")
    if period == "weekly":
        week_start = date - timedelta(days=(date.weekday() + 1) % 7)
        return week_start.strftime("%Y-%m-%d")
    return date.strftime("%Y-%m")


class MetricsService:
    """
    トレード成績分析サービスクラス

    Attributes:
        db (Session): SQLAlchemyデータベースセッション
    """

    def __init__(self, db: Session):
        """
        MetricsServiceを初期化する

        Args:
            db (Session): SQLAlchemyデータベースセッション
        """
        self.db = db

    def _initial_balance(self, user_id) -> float:
        user = self.db.query(User).filter(User.id == as_uuid(user_id)).first()
        if user and user.initial_balance:
            return float(user.initial_balance)
        return float(DEFAULT_INITIAL_BALANCE)

    def get_summary(
        self,
        user_id,
        instrument_type: Optional[str] = None,
        instrument_name: Optional[str] = None,
        timeframe: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        """
        成績サマリーを取得する

        Args:
            user_id: ユーザーID
            instrument_type (str, optional): 商品種別で絞り込み
            instrument_name (str, optional): 銘柄名の部分一致で絞り込み
            timeframe (str, optional): 時間足で絞り込み
            start_date (datetime, optional): 取引日の下限
            end_date (datetime, optional): 取引日の上限

        Returns:
            dict: 基本指標・連続性指標・初期資金
        """
        query = self.db.query(TradeEntry).filter(TradeEntry.user_id == as_uuid(user_id))
        if instrument_type:
            query = query.filter(TradeEntry.instrument_type == instrument_type)
        if instrument_name:
            query = query.filter(TradeEntry.instrument_name.ilike(f"%{instrument_name}%"))
        if timeframe:
            query = query.filter(TradeEntry.timeframe == timeframe)
        if start_date:
            query = query.filter(TradeEntry.trade_date >= naive_utc(start_date))
        if end_date:
            query = query.filter(TradeEntry.trade_date <= naive_utc(end_date))

        trades = query.order_by(TradeEntry.created_at.asc()).all()

        summary = calculate_metrics(trades)
        summary.update(calculate_consecutive(trades))
        summary["initial_balance"] = self._initial_balance(user_id)
        return summary

    def get_performance(
        self,
        user_id,
        period: str = "monthly",
        instrument_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[dict]:
        """
        期間別の成績推移を取得する

        取引日（未設定の場合はエントリー日時）で期間ごとに集計し、
        累積損益を付与して期間の昇順で返す。

        Args:
            user_id: ユーザーID
            period (str): "daily" / "weekly" / "monthly"

        Returns:
            List[dict]: period, trades, win_rate, profit_loss, cumulative_profit_loss
        """
        query = self.db.query(TradeEntry).filter(TradeEntry.user_id == as_uuid(user_id))
        if instrument_type:
            query = query.filter(TradeEntry.instrument_type == instrument_type)
        if start_date:
            query = query.filter(TradeEntry.trade_date >= naive_utc(start_date))
        if end_date:
            query = query.filter(TradeEntry.trade_date <= naive_utc(end_date))

        trades = query.order_by(TradeEntry.entry_date.asc()).all()

        grouped: Dict[str, List[TradeEntry]] = {}
        for trade in trades:
            date = trade.trade_date or trade.entry_date
            if not date:
                continue
            grouped.setdefault(period_key(date, period), []).append(trade)

        performance = []
        cumulative = 0.0
        for key in sorted(grouped):
            metrics = calculate_metrics(grouped[key])
            cumulative += metrics["net_profit_loss"]
            performance.append({
                "period": key,
                "trades": len(grouped[key]),
                "win_rate": round(metrics["win_rate"], 2),
                "profit_loss": round(metrics["net_profit_loss"], 2),
                "cumulative_profit_loss": round(cumulative, 2),
            })
        return performance

    def get_instruments(self, user_id) -> List[dict]:
        """
        銘柄別の成績を取得する

        商品種別と銘柄名の組み合わせごとに集計し、損益の降順で返す。

        Returns:
            List[dict]: instrument_type, instrument_name, trades, win_rate,
                profit_loss, profit_factor, average_rrr
        """
        trades = (
            self.db.query(TradeEntry)
            .filter(TradeEntry.user_id == as_uuid(user_id))
            .order_by(TradeEntry.created_at.asc())
            .all()
        )

        grouped: "OrderedDict[tuple, List[TradeEntry]]" = OrderedDict()
        for trade in trades:
            grouped.setdefault((trade.instrument_type, trade.instrument_name), []).append(trade)

        instruments = []
        for (instrument_type, instrument_name), group in grouped.items():
            metrics = calculate_metrics(group)
            instruments.append({
                "instrument_type": instrument_type,
                "instrument_name": instrument_name,
                "trades": len(group),
                "win_rate": round(metrics["win_rate"], 2),
                "profit_loss": round(metrics["net_profit_loss"], 2),
                "profit_factor": round(metrics["profit_factor"], 2),
                "average_rrr": round(metrics["average_rrr"], 2),
            })

        return sorted(instruments, key=lambda i: i["profit_loss"], reverse=True)

    def get_equity_curve(self, user_id) -> dict:
        """
        資産曲線データを取得する

        初期資金から作成日時の順にトレード損益を積み上げ、
        トレードごとの残高・累積損益・ドローダウンを返す。

        Returns:
            dict: 資産曲線データ
                - points: トレードごとの残高推移（先頭は初期資金）
                - initial_balance: 初期資金
                - final_balance: 最終残高
                - max_drawdown / max_drawdown_percent: 最大ドローダウン（負の値）
        """
        initial_balance = Decimal(str(self._initial_balance(user_id)))
        trades = (
            self.db.query(TradeEntry)
            .filter(TradeEntry.user_id == as_uuid(user_id))
            .order_by(TradeEntry.created_at.asc())
            .all()
        )

        points = [{
            "trade_id": None,
            "timestamp": None,
            "balance": float(initial_balance),
            "cumulative_pnl": 0.0,
            "drawdown": 0.0,
            "drawdown_percent": 0.0,
        }]

        balance = initial_balance
        peak = initial_balance
        max_drawdown = Decimal("0")
        max_drawdown_percent = Decimal("0")

        for trade in trades:
            balance += trade.profit_loss or Decimal("0")
            peak = max(peak, balance)
            drawdown = peak - balance
            drawdown_percent = drawdown / peak * 100 if peak > 0 else Decimal("0")
            if drawdown > max_drawdown:
                max_drawdown = drawdown
                max_drawdown_percent = drawdown_percent

            points.append({
                "trade_id": str(trade.id),
                "timestamp": trade.created_at.isoformat() if trade.created_at else None,
                "balance": round(float(balance), 2),
                "cumulative_pnl": round(float(balance - initial_balance), 2),
                "drawdown": round(float(-drawdown), 2),
                "drawdown_percent": round(float(-drawdown_percent), 2),
            })

        return {
            "points": points,
            "initial_balance": float(initial_balance),
            "final_balance": round(float(balance), 2),
            "max_drawdown": round(float(-max_drawdown), 2),
            "max_drawdown_percent": round(float(-max_drawdown_percent), 2),
        }
