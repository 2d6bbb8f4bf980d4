"""
トレード成績分析サービスのテスト
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.services.metrics_service import (
    MetricsService,
    calculate_metrics,
    calculate_consecutive,
    period_key,
)


class TestCalculateMetrics:
    """calculate_metrics関数のテスト"""

    def test_empty(self):
        metrics = calculate_metrics([])
        assert metrics["total_trades"] == 0
        assert metrics["win_rate"] == 0.0
        assert metrics["profit_factor"] == 0.0

    def test_basic_metrics(self, sample_user, make_trade):
        trades = [
            make_trade(sample_user, 300, risk_reward_ratio=Decimal("2.0")),
            make_trade(sample_user, -100, risk_reward_ratio=Decimal("1.0")),
            make_trade(sample_user, 100),
            make_trade(sample_user, 0),
        ]
        metrics = calculate_metrics(trades)

        assert metrics["total_trades"] == 4
        assert metrics["winning_trades"] == 2
        assert metrics["losing_trades"] == 1
        assert metrics["breakeven_trades"] == 1
        assert metrics["win_rate"] == 50.0
        assert metrics["total_profit"] == 400.0
        assert metrics["total_loss"] == 100.0
        assert metrics["net_profit_loss"] == 300.0
        assert metrics["profit_factor"] == 4.0
        assert metrics["average_win"] == 200.0
        assert metrics["average_loss"] == 100.0
        assert metrics["largest_win"] == 300.0
        assert metrics["largest_loss"] == 100.0
        assert metrics["average_rrr"] == 1.5
        # make_trade はエントリーから決済まで1時間
        assert metrics["average_holding_time"] == 1.0

    def test_profit_factor_without_losses(self, sample_user, make_trade):
        """損失がない場合のプロフィットファクターは総利益"""
        trades = [make_trade(sample_user, 150), make_trade(sample_user, 50)]
        assert calculate_metrics(trades)["profit_factor"] == 200.0


class TestCalculateConsecutive:
    """calculate_consecutive関数のテスト"""

    def test_streaks(self, sample_user, make_trade):
        trades = [make_trade(sample_user, pl) for pl in (10, 20, -5, 30, 40, 50, -1, -2, 0, -3)]
        assert calculate_consecutive(trades) == {
            "max_consecutive_wins": 3,
            "max_consecutive_losses": 2,
        }


class TestPeriodKey:
    """period_key関数のテスト"""

    def test_daily_and_monthly(self):
        date = datetime(2024, 1, 17, 15, 0)
        assert period_key(date, "daily") == "2024-01-17"
        assert period_key(date, "monthly") == "2024-01"

    def test_weekly_starts_on_sunday(self):
        # 2024-01-14 は日曜日
        assert period_key(datetime(2024, 1, 14), "weekly") == "2024-01-14"
        assert period_key(datetime(2024, 1, 17), "weekly") == "2024-01-14"
        assert period_key(datetime(2024, 1, 20), "weekly") == "2024-01-14"
        assert period_key(datetime(2024, 1, 21), "weekly") == "2024-01-21"


class TestMetricsService:
    """MetricsServiceのテスト"""

    def test_summary(self, test_db, sample_user, other_user, make_trade):
        make_trade(sample_user, 200, instrument_name="EURUSD")
        make_trade(sample_user, -100, instrument_name="USDJPY", timeframe="H1")
        make_trade(other_user, 999)

        summary = MetricsService(test_db).get_summary(sample_user.id)
        assert summary["total_trades"] == 2
        assert summary["net_profit_loss"] == 100.0
        assert summary["max_consecutive_wins"] == 1
        assert summary["initial_balance"] == 10000.0

    def test_summary_filters(self, test_db, sample_user, make_trade, base_time):
        make_trade(sample_user, 200, instrument_name="EURUSD", trade_date=base_time)
        make_trade(sample_user, -100, instrument_name="USDJPY", timeframe="H1",
                   trade_date=base_time + timedelta(days=10))
        make_trade(sample_user, 50, instrument_type="CRYPTO", instrument_name="BTCUSD",
                   trade_date=base_time + timedelta(days=20))

        service = MetricsService(test_db)
        assert service.get_summary(sample_user.id, instrument_type="CRYPTO")["total_trades"] == 1
        assert service.get_summary(sample_user.id, instrument_name="jpy")["total_trades"] == 1
        assert service.get_summary(sample_user.id, timeframe="H1")["net_profit_loss"] == -100.0
        summary = service.get_summary(
            sample_user.id,
            start_date=base_time + timedelta(days=5),
            end_date=base_time + timedelta(days=15),
        )
        assert summary["total_trades"] == 1

    def test_performance_monthly(self, test_db, sample_user, make_trade):
        make_trade(sample_user, 100, trade_date=datetime(2024, 1, 10))
        make_trade(sample_user, -40, trade_date=datetime(2024, 1, 20))
        make_trade(sample_user, 60, trade_date=datetime(2024, 2, 5))

        performance = MetricsService(test_db).get_performance(sample_user.id, period="monthly")
        assert performance == [
            {"period": "2024-01", "trades": 2, "win_rate": 50.0, "profit_loss": 60.0, "cumulative_profit_loss": 60.0},
            {"period": "2024-02", "trades": 1, "win_rate": 100.0, "profit_loss": 60.0, "cumulative_profit_loss": 120.0},
        ]

    def test_performance_daily(self, test_db, sample_user, make_trade):
        make_trade(sample_user, 100, trade_date=datetime(2024, 1, 10, 9))
        make_trade(sample_user, 50, trade_date=datetime(2024, 1, 10, 15))

        performance = MetricsService(test_db).get_performance(sample_user.id, period="daily")
        assert [p["period"] for p in performance] == ["2024-01-10"]
        assert performance[0]["profit_loss"] == 150.0

    def test_instruments_sorted_by_profit(self, test_db, sample_user, make_trade):
        make_trade(sample_user, -30, instrument_name="EURUSD")
        make_trade(sample_user, 100, instrument_name="USDJPY")
        make_trade(sample_user, 20, instrument_name="USDJPY")
        make_trade(sample_user, 10, instrument_type="CRYPTO", instrument_name="BTCUSD")

        instruments = MetricsService(test_db).get_instruments(sample_user.id)
        assert [(i["instrument_name"], i["profit_loss"]) for i in instruments] == [
            ("USDJPY", 120.0),
            ("BTCUSD", 10.0),
            ("EURUSD", -30.0),
        ]
        assert instruments[0]["trades"] == 2
        assert instruments[0]["win_rate"] == 100.0

    def test_equity_curve(self, test_db, sample_user, make_trade):
        make_trade(sample_user, 1000)
        make_trade(sample_user, -2200)
        make_trade(sample_user, 500)

        curve = MetricsService(test_db).get_equity_curve(sample_user.id)

        assert [p["balance"] for p in curve["points"]] == [10000.0, 11000.0, 8800.0, 9300.0]
        assert curve["points"][0]["trade_id"] is None
        assert curve["points"][3]["cumulative_pnl"] == -700.0
        assert curve["final_balance"] == 9300.0
        # ピーク11000から8800まで -2200（-20%）
        assert curve["max_drawdown"] == -2200.0
        assert curve["max_drawdown_percent"] == -20.0
        assert curve["points"][3]["drawdown"] == -1700.0

    def test_equity_curve_without_trades(self, test_db, sample_user):
        curve = MetricsService(test_db).get_equity_curve(sample_user.id)
        assert len(curve["points"]) == 1
        assert curve["final_balance"] == 10000.0
        assert curve["max_drawdown"] == 0.0

    @pytest.mark.parametrize("period", ["daily", "weekly", "monthly"])
    def test_performance_without_trades(self, test_db, sample_user, period):
        assert MetricsService(test_db).get_performance(sample_user.id, period=period) == []
