"""
残高再計算サービス

ユーザーの初期資金とトレード履歴（作成日時の昇順）から口座残高を再現し、
各トレードの損益を「そのトレード直前の口座残高」に対する割合（%）で算出する。

計算式:
    残高(0) = 初期資金
    残高(i) = 残高(i-1) + 損益(i)
    損益率(i) = 損益(i) / 残高(i-1) × 100  （小数点以下4桁。端数0.5は正の方向へ丸める）
    ただし 残高(i-1) <= 0 の場合は 損益率(i) = 0

損益率は表示用の派生値のため、履歴の取得に失敗しても例外は送出せず 0 を返す。
結果は Computed / DegradedDefault で返し、どちらの経路で算出されたかを判別できる。

注意:
    アカウント単位の排他制御は行わない。同一アカウントのトレード作成が並行すると、
    両方が同じ履歴スナップショットを基準に損益率を計算してしまう。
    厳密さが必要な呼び出し側はアカウント単位で作成処理を直列化すること。

使用例:
    calculator = BalanceRecalculator(AccountStore(db), TradeStore(db))
    result = calculator.single_trade_percentage(500, user_id)
    result.value  # 5.0
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Optional, Union, Mapping, Sequence, Tuple, List

from src.utils.config import DEFAULT_INITIAL_BALANCE, BALANCE_ADVANCE_WHEN_NON_POSITIVE
from src.utils.logger import get_logger

logger = get_logger(__name__)


# 損益率の丸め単位（小数点以下4桁）
PERCENTAGE_QUANTUM = Decimal("0.0001")
HALF_QUANTUM = PERCENTAGE_QUANTUM / 2

# デフォルト値で代替した理由
HISTORY_UNAVAILABLE = "history_unavailable"
NON_POSITIVE_BALANCE = "non_positive_balance"


@dataclass(frozen=True)
class Computed:
    """残高から算出できた損益率"""
    value: float

    @property
    def is_degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class DegradedDefault:
    """算出できずデフォルト値（0）で代替した損益率"""
    reason: str
    detail: str = ""
    value: float = 0.0

    @property
    def is_degraded(self) -> bool:
        return True


PercentageResult = Union[Computed, DegradedDefault]


@dataclass(frozen=True)
class BatchPercentages:
    """
    一括計算の結果

    Attributes:
        trades: 入力トレードのコピー（profit_loss_percentage 付き、入力順）
        results: 各トレードの算出結果（trades と同じ順序）
    """
    trades: Tuple[dict, ...]
    results: Tuple[PercentageResult, ...]

    @property
    def history_unavailable(self) -> bool:
        return any(
            isinstance(r, DegradedDefault) and r.reason == HISTORY_UNAVAILABLE
            for r in self.results
        )


def to_decimal(value) -> Decimal:
    """数値をDecimalに変換する（NaN・無限大や数値でない値はValueError）"""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError:
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def percentage_of(profit_loss: Decimal, balance: Decimal) -> float:
    """
    残高に対する損益率（%）を小数点以下4桁に丸めて返す

    端数0.5は正の方向へ丸める（-0.00005 → 0、0.00005 → 0.0001）。
    """
    percentage = (profit_loss / balance * 100 + HALF_QUANTUM).quantize(PERCENTAGE_QUANTUM, rounding=ROUND_FLOOR)
    return float(percentage)


def _field(record, name: str):
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _copy_record(record) -> dict:
    if isinstance(record, Mapping):
        return dict(record)
    if hasattr(record, "model_dump"):
        return record.model_dump()
    return dict(vars(record))


class BalanceRecalculator:
    """
    残高再計算クラス

    口座ストアとトレードストアを読み取り専用で参照し、損益率を計算する。
    状態を持たないため、同じ履歴と入力に対しては常に同じ結果を返す。

    Attributes:
        account_store: get(user_id) -> {"initial_balance": ...} | None を提供するストア
        trade_store: list_by_user(user_id, created_before=None) を提供するストア
        default_initial_balance (Decimal): 初期資金が未設定の場合に使う値
        advance_when_non_positive (bool): 残高が0以下のトレードでも残高を進めるか
    """

    def __init__(
        self,
        account_store,
        trade_store,
        default_initial_balance=DEFAULT_INITIAL_BALANCE,
        advance_when_non_positive: bool = BALANCE_ADVANCE_WHEN_NON_POSITIVE,
    ):
        self.account_store = account_store
        self.trade_store = trade_store
        self.default_initial_balance = to_decimal(default_initial_balance)
        self.advance_when_non_positive = advance_when_non_positive

    def _initial_balance(self, user_id) -> Decimal:
        account = self.account_store.get(user_id)
        initial_balance = _field(account, "initial_balance") if account else None
        # 未設定（None・0）の場合はデフォルト値
        if not initial_balance:
            return self.default_initial_balance
        return to_decimal(initial_balance)

    def _opening_balance(self, user_id, created_before: Optional[datetime] = None) -> Decimal:
        """初期資金に既存トレードの損益を積み上げた残高を返す"""
        balance = self._initial_balance(user_id)
        for trade in self.trade_store.list_by_user(user_id, created_before=created_before):
            balance += to_decimal(_field(trade, "profit_loss") or 0)
        return balance

    def _replay(self, opening_balance: Decimal, profit_losses: Sequence[Decimal]) -> List[PercentageResult]:
        """新規トレードを順に適用し、各トレードの損益率を求める"""
        results: List[PercentageResult] = []
        running_balance = opening_balance

        for profit_loss in profit_losses:
            if running_balance <= 0:
                results.append(DegradedDefault(NON_POSITIVE_BALANCE, f"balance={running_balance}"))
                if self.advance_when_non_positive:
                    running_balance += profit_loss
                continue

            results.append(Computed(percentage_of(profit_loss, running_balance)))
            running_balance += profit_loss

        return results

    def single_trade_percentage(
        self, profit_loss, user_id, created_before: Optional[datetime] = None
    ) -> PercentageResult:
        """
        新規トレード1件の損益率を計算する

        既存トレードをすべて反映した現在残高を基準にする。
        履歴の取得や値の解析に失敗した場合は例外を送出せず DegradedDefault を返す。

        Args:
            profit_loss: 損益額（符号付き）
            user_id: ユーザーID
            created_before (datetime, optional): 指定時は、この日時より前のトレードのみを履歴とする

        Returns:
            PercentageResult: Computed(損益率) または DegradedDefault(理由)
        """
        try:
            current_balance = self._opening_balance(user_id, created_before)
            amount = to_decimal(profit_loss)
        except Exception as e:
            logger.error(f"損益率の計算に失敗しました: user_id={user_id}, error={e}")
            return DegradedDefault(HISTORY_UNAVAILABLE, str(e))

        if current_balance <= 0:
            logger.warning(f"現在残高が0以下のため損益率を0とします: user_id={user_id}, balance={current_balance}")
            return DegradedDefault(NON_POSITIVE_BALANCE, f"balance={current_balance}")

        return Computed(percentage_of(amount, current_balance))

    def batch_trade_percentages(self, trades: Sequence[Mapping], user_id) -> BatchPercentages:
        """
        複数の新規トレードの損益率を入力順に計算する

        既存トレードを反映した残高から開始し、各トレードの損益を順に積み上げる。
        入力のトレードは変更せず、profit_loss_percentage を付与したコピーを返す。
        失敗時はすべてのトレードの損益率を0とする。

        Args:
            trades: profit_loss を持つトレード（未保存、時系列順）
            user_id: ユーザーID

        Returns:
            BatchPercentages: 損益率付きトレードと各トレードの算出結果
        """
        trades = tuple(trades)
        try:
            opening_balance = self._opening_balance(user_id)
            profit_losses = [to_decimal(_field(trade, "profit_loss")) for trade in trades]
            results = self._replay(opening_balance, profit_losses)
        except Exception as e:
            logger.error(f"損益率の一括計算に失敗しました: user_id={user_id}, error={e}")
            results = [DegradedDefault(HISTORY_UNAVAILABLE, str(e)) for _ in trades]

        skipped = sum(1 for r in results if isinstance(r, DegradedDefault) and r.reason == NON_POSITIVE_BALANCE)
        if skipped:
            logger.warning(f"残高が0以下のため {skipped} 件の損益率を0としました: user_id={user_id}")

        return BatchPercentages(
            trades=tuple(
                {**_copy_record(trade), "profit_loss_percentage": result.value}
                for trade, result in zip(trades, results)
            ),
            results=tuple(results),
        )
