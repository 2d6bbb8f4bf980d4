"""
ロガーユーティリティのテスト

レベルフィルター、JSTフォーマット、ロガーの取得とログ出力先をテストする。
"""

import logging
import re
from unittest.mock import MagicMock

from src.utils.logger import LoggerSetting, LevelFilter, JSTFormatter, get_logger


def _record(levelno: int) -> MagicMock:
    record = MagicMock()
    record.levelno = levelno
    return record


class TestLevelFilter:
    """LevelFilterのテスト"""

    def test_info_filter_passes_info_and_above(self):
        """INFOフィルターはINFO以上を通す"""
        filter_obj = LevelFilter(logging.INFO)
        for level in (logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL):
            assert filter_obj.filter(_record(level)) is True

    def test_info_filter_rejects_debug(self):
        assert LevelFilter(logging.INFO).filter(_record(logging.DEBUG)) is False

    def test_error_filter_passes_error_and_critical(self):
        """ERRORフィルターはERROR以上を通す"""
        filter_obj = LevelFilter(logging.ERROR)
        assert filter_obj.filter(_record(logging.ERROR)) is True
        assert filter_obj.filter(_record(logging.CRITICAL)) is True

    def test_error_filter_rejects_warning_and_info(self):
        filter_obj = LevelFilter(logging.ERROR)
        assert filter_obj.filter(_record(logging.WARNING)) is False
        assert filter_obj.filter(_record(logging.INFO)) is False


class TestJSTFormatter:
    """JSTFormatterのテスト"""

    def test_format_time_is_utc_plus_nine(self):
        """UTCから9時間進めた日本時間でフォーマットされる"""
        formatter = JSTFormatter("%(asctime)s - %(message)s", "%Y-%m-%d %H:%M:%S")
        record = MagicMock()
        record.created = 0  # 1970-01-01 00:00:00 UTC

        assert formatter.formatTime(record) == "1970-01-01 09:00:00"

    def test_format_time_custom_format(self):
        """カスタムフォーマットで時刻をフォーマットできる"""
        formatter = JSTFormatter("%(asctime)s - %(message)s")
        record = MagicMock()
        record.created = 15 * 3600  # 日本時間では翌日

        formatted_time = formatter.formatTime(record, "%Y/%m/%d")
        assert re.match(r"\d{4}/\d{2}/\d{2}$", formatted_time) is not None
        assert formatted_time == "1970/01/02"


class TestLogDirectory:
    """ログ出力先のテスト"""

    def test_log_dir_from_environment(self, tmp_path, monkeypatch):
        """LOG_DIR が指定された場合はそのディレクトリを作成して使う"""
        log_dir = tmp_path / "logs"
        monkeypatch.setenv("LOG_DIR", str(log_dir))

        assert LoggerSetting._resolve_log_directory() == log_dir
        assert log_dir.is_dir()

    def test_unwritable_log_dir_returns_none(self, tmp_path, monkeypatch):
        """ディレクトリを作成できない場合はコンソール出力のみ"""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        monkeypatch.setenv("LOG_DIR", str(blocker / "logs"))

        assert LoggerSetting._resolve_log_directory() is None

class TestGetLogger:
    """get_logger関数のテスト"""

    def test_same_name_returns_cached_logger(self):
        """同じ名前では同じロガーを再利用する"""
        assert get_logger("src.services.balance_service") is get_logger("src.services.balance_service")

    def test_different_names_return_different_loggers(self):
        logger1 = get_logger("journal_a")
        logger2 = get_logger("journal_b")
        assert isinstance(logger1, logging.Logger)
        assert logger1 is not logger2

    def test_handlers_are_not_duplicated(self):
        """2回取得してもハンドラーは増えない"""
        logger = get_logger("journal_handlers")
        count = len(logger.handlers)
        get_logger("journal_handlers")
        LoggerSetting("journal_handlers")
        assert len(logger.handlers) == count


class TestLoggerFunctionality:
    """ロガー機能のテスト"""

    def test_logger_levels(self, caplog):
        """各レベルのログを出力できる"""
        logger = get_logger("journal_levels")
        with caplog.at_level(logging.INFO):
            logger.info("トレードを登録しました")
            logger.warning("損益率を0で登録します")
            logger.error("トレード履歴の取得に失敗しました")
        assert "トレードを登録しました" in caplog.text
        assert "損益率を0で登録します" in caplog.text
        assert "トレード履歴の取得に失敗しました" in caplog.text

    def test_logger_with_exception_info(self, caplog):
        """例外情報付きでログを出力できる"""
        logger = get_logger("journal_exception")
        try:
            raise ValueError("不正な損益額")
        except ValueError:
            with caplog.at_level(logging.ERROR):
                logger.error("損益率の計算に失敗しました", exc_info=True)
        assert "損益率の計算に失敗しました" in caplog.text
        assert "ValueError" in caplog.text
