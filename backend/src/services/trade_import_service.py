"""
トレードインポート・エクスポートサービス

CSV/JSONファイルからトレードを一括登録し、登録済みトレードをCSV/JSONで出力する。
インポートしたトレードは TradeService.create_trades で登録するため、
損益率はファイル内の順序で残高を積み上げて計算される。

CSVの必須カラム（snake_case・camelCaseどちらも可）:
    instrument_type, instrument_name, direction, entry_price, exit_price,
    quantity, profit_loss
日時カラム（entry_date, exit_date）は任意。tags はセミコロン区切り。

使用例:
    service = TradeImportService(db)
    result = service.import_file(user_id, "trades.csv", content)
    csv_text = service.export_csv(user_id)
"""

import io
import json
from datetime import datetime, timezone
from typing import List, Tuple

import pandas as pd
from pydantic import ValidationError
from sqlalchemy.orm import Session

from src.models.trade_entry import TradeEntry
from src.schemas.trade_schema import TradeCreate
from src.services.journal_store import as_uuid
from src.services.trade_service import TradeService, trade_to_dict
from src.utils.logger import get_logger

logger = get_logger(__name__)


# camelCase → snake_case（旧形式のエクスポートとの互換用）
COLUMN_ALIASES = {
    "instrumentType": "instrument_type",
    "instrumentName": "instrument_name",
    "entryPrice": "entry_price",
    "exitPrice": "exit_price",
    "stopLoss": "stop_loss",
    "takeProfit": "take_profit",
    "positionSize": "position_size",
    "profitLoss": "profit_loss",
    "entryDate": "entry_date",
    "exitDate": "exit_date",
    "setupType": "setup_type",
    "riskRewardRatio": "risk_reward_ratio",
    "imageUrl": "image_url",
}

REQUIRED_COLUMNS = (
    "instrument_type", "instrument_name", "direction",
    "entry_price", "exit_price", "quantity", "profit_loss",
)
DATE_COLUMNS = ("entry_date", "exit_date")

EXPORT_COLUMNS = [
    "instrument_type", "instrument_name", "direction",
    "entry_price", "exit_price", "stop_loss", "take_profit",
    "quantity", "position_size", "profit_loss", "profit_loss_percentage",
    "entry_date", "exit_date", "duration", "setup_type", "timeframe",
    "risk_reward_ratio", "notes", "tags", "image_url",
]

# 一度にインポートできる最大件数
MAX_IMPORT_ROWS = 5000


def _normalize_key(key: str) -> str:
    key = str(key).strip()
    return COLUMN_ALIASES.get(key, key.lower())


def _to_python(value):
    """pandasの値をPythonの値に変換する（欠損値はNone）"""
    if isinstance(value, str):
        return value
    if pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if hasattr(value, "item"):
        return value.item()
    return value


class TradeImportService:
    """
    トレードインポート・エクスポートサービスクラス

    Attributes:
        db (Session): SQLAlchemyデータベースセッション
        trade_service (TradeService): トレードの一括登録に使用する
    """

    def __init__(self, db: Session, trade_service: TradeService = None):
        """
        TradeImportServiceを初期化する

        Args:
            db (Session): SQLAlchemyデータベースセッション
            trade_service (TradeService, optional): 省略時は同じセッションで生成
        """
        self.db = db
        self.trade_service = trade_service or TradeService(db)

    def parse_csv(self, content: bytes) -> List[dict]:
        """
        CSVをトレード行のリストに変換する

        Args:
            content (bytes): CSVファイルの内容（BOM付きUTF-8可）

        Returns:
            List[dict]: 列名を正規化したトレード行

        Raises:
            ValueError: 必須カラムが不足している場合、日時を解析できない場合
        """
        df = pd.read_csv(io.BytesIO(content), encoding="utf-8-sig", dtype=str, skipinitialspace=True)
        df = df.rename(columns=_normalize_key)

        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(missing)}")

        for column in DATE_COLUMNS:
            if column not in df.columns:
                continue
            try:
                parsed = pd.to_datetime(df[column], format="mixed", utc=True)
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid date in column '{column}': {e}")
            # UTCのnaive日時に揃える
            df[column] = parsed.dt.tz_localize(None)

        rows = []
        for record in df.to_dict("records"):
            row = {key: _to_python(value) for key, value in record.items()}
            if isinstance(row.get("tags"), str):
                row["tags"] = [t.strip() for t in row["tags"].split(";") if t.strip()]
            rows.append({k: v for k, v in row.items() if v is not None})
        return rows

    def parse_json(self, content: bytes) -> List[dict]:
        """
        JSONをトレード行のリストに変換する

        {"trades": [...]} 形式（エクスポート形式）とトレードの配列の両方に対応する。

        Raises:
            ValueError: JSONの解析に失敗した場合、形式が不正な場合
        """
        data = json.loads(content.decode("utf-8-sig"))
        trades = data.get("trades") if isinstance(data, dict) else data
        if not isinstance(trades, list):
            raise ValueError("JSON must be a list of trades or an object with a 'trades' list")

        rows = []
        for trade in trades:
            if not isinstance(trade, dict):
                raise ValueError("Each trade must be a JSON object")
            rows.append({_normalize_key(k): v for k, v in trade.items()})
        return rows

    def validate_rows(self, rows: List[dict]) -> Tuple[List[dict], List[dict]]:
        """
        トレード行を検証する

        Returns:
            Tuple[List[dict], List[dict]]: (検証済みトレード, 行番号付きエラー)
        """
        valid = []
        errors = []
        for index, row in enumerate(rows, start=1):
            try:
                valid.append(TradeCreate(**row).model_dump())
            except ValidationError as e:
                errors.append({
                    "row": index,
                    "errors": [
                        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    ],
                })
        return valid, errors

    def import_file(self, user_id, filename: str, content: bytes) -> dict:
        """
        ファイルからトレードを一括登録する

        1行でも検証エラーがある場合は何も登録しない。

        Args:
            user_id: ユーザーID
            filename (str): ファイル名（拡張子で形式を判定）
            content (bytes): ファイルの内容

        Returns:
            dict: 登録結果（imported_count, degraded_count, trades）
                エラー時は {"error": "エラーメッセージ", "details": [...]}
        """
        name = (filename or "").lower()
        try:
            if name.endswith(".csv"):
                rows = self.parse_csv(content)
            elif name.endswith(".json"):
                rows = self.parse_json(content)
            else:
                return {"error": "Unsupported file type. Upload a CSV or JSON file"}
        except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.warning(f"インポートファイルの解析に失敗しました: filename={filename}, error={e}")
            return {"error": f"Failed to parse file: {e}"}

        if not rows:
            return {"error": "No trades found in file"}
        if len(rows) > MAX_IMPORT_ROWS:
            return {"error": f"Too many trades: {len(rows)} (max {MAX_IMPORT_ROWS})"}

        valid, errors = self.validate_rows(rows)
        if errors:
            logger.warning(f"インポートデータに不正な行があります: filename={filename}, rows={len(errors)}")
            return {"error": "Invalid trades in file", "details": errors}

        result = self.trade_service.create_trades(user_id, valid)
        if "error" not in result:
            logger.info(f"トレードをインポートしました: filename={filename}, count={result['imported_count']}")
        return result

    def _export_rows(self, user_id) -> List[dict]:
        trades = (
            self.db.query(TradeEntry)
            .filter(TradeEntry.user_id == as_uuid(user_id))
            .order_by(TradeEntry.created_at.asc())
            .all()
        )
        return [trade_to_dict(t) for t in trades]

    def export_json(self, user_id) -> dict:
        """登録済みトレードをJSON出力用の辞書にする（作成日時の昇順）"""
        trades = self._export_rows(user_id)
        return {
            "export_date": datetime.now(timezone.utc).isoformat(),
            "total_trades": len(trades),
            "trades": [{k: t[k] for k in EXPORT_COLUMNS} for t in trades],
        }

    def export_csv(self, user_id) -> str:
        """登録済みトレードをCSV文字列にする（Excel対応のBOM付き）"""
        trades = self._export_rows(user_id)
        rows = []
        for trade in trades:
            row = {k: trade[k] for k in EXPORT_COLUMNS}
            row["tags"] = ";".join(row["tags"])
            rows.append(row)

        df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
        return "\ufeff" + df.to_csv(index=False, lineterminator="\n")
