"""
ロガーの設定

get_logger(__name__) で取得したロガーは、コンソールと以下のファイルに出力する。

    app_info.log   INFO以上（トレード登録、インポート件数など）
    app_error.log  ERROR以上（トレード履歴の読み込み失敗など）
    app_debug.log  DEBUG以上（環境変数 DEBUG=true の場合のみ）

各ファイルは1MBごとにローテーションし、10世代まで保持する。
出力先は環境変数 LOG_DIR、未指定の場合は <プロジェクトルート>/logs/backend。
"""

import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


class LevelFilter(logging.Filter):
    """指定レベル以上のログのみを通すフィルター"""

    def __init__(self, min_level: int):
        super().__init__()
        self.min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.min_level


class JSTFormatter(logging.Formatter):
    """日本時間（JST）でフォーマットするフォーマッター"""

    def converter(self, timestamp: float) -> time.struct_time:
        """UTCタイムスタンプをJSTに変換"""
        return time.gmtime(timestamp + 9 * 3600)

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        ct = self.converter(record.created)
        return time.strftime(datefmt or "%Y-%m-%d %H:%M:%S", ct)


class LoggerSetting:
    """
    ログ設定クラス

    ハンドラーの設定はロガー名ごとに1回だけ行う。
    ログディレクトリはプロセス内で最初の1回だけ決定する。

    使用例:
        from src.utils.logger import get_logger
        logger = get_logger(__name__)
        logger.info("トレードを登録しました")
    """

    MAX_BYTES = 1_000_000      # 1MB
    BACKUP_COUNT = 10

    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    _log_dir: Optional[Path] = None
    _initialized: bool = False

    def __init__(self, name: str):
        """
        ロガーを初期化

        Args:
            name: ロガー名（通常は __name__ を使用）
        """
        self.name = name
        self.logger = logging.getLogger(name)

        if not LoggerSetting._initialized:
            LoggerSetting._log_dir = self._resolve_log_directory()
            LoggerSetting._initialized = True

        if not self.logger.handlers:
            self._setup_handlers()

    @staticmethod
    def _resolve_log_directory() -> Optional[Path]:
        """ログディレクトリを決定・作成する（作成できない場合はNone）"""
        env_dir = os.environ.get("LOG_DIR")
        if env_dir:
            log_dir = Path(env_dir)
        else:
            # backend/src/utils/logger.py から3階層上がプロジェクトルート
            project_root = Path(__file__).resolve().parent.parent.parent.parent
            log_dir = project_root / "logs" / "backend"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            # 読み取り専用環境ではコンソール出力のみ
            return None
        return log_dir

    def _file_handler(self, filename: str, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
        handler = RotatingFileHandler(
            LoggerSetting._log_dir / filename,
            maxBytes=self.MAX_BYTES,
            backupCount=self.BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.addFilter(LevelFilter(level))
        handler.setFormatter(formatter)
        return handler

    def _setup_handlers(self) -> None:
        """ログハンドラーを設定"""
        self.logger.setLevel(logging.DEBUG)
        formatter = JSTFormatter(self.LOG_FORMAT, self.DATE_FORMAT)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if LoggerSetting._log_dir is None:
            return

        self.logger.addHandler(self._file_handler("app_info.log", logging.INFO, formatter))
        self.logger.addHandler(self._file_handler("app_error.log", logging.ERROR, formatter))

        # DEBUGファイル出力は開発環境のみ
        if os.environ.get("DEBUG", "").lower() == "true":
            self.logger.addHandler(self._file_handler("app_debug.log", logging.DEBUG, formatter))


_loggers: dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    """
    ロガーを取得

    同じ名前のロガーは再利用されます。

    Args:
        name: ロガー名（通常は __name__ を使用）

    Returns:
        設定済みのロガーインスタンス

    使用例:
        logger = get_logger(__name__)
        logger.info(f"トレードを登録しました: trade_id={trade_id}")
        logger.warning(f"損益率をデフォルト値で代替しました: {reason}")
        logger.error(f"トレード履歴の取得に失敗しました: {e}")
    """
    if name not in _loggers:
        _loggers[name] = LoggerSetting(name).logger
    return _loggers[name]
