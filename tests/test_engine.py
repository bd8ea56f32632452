"""
Tests for the Commission & Settlement Engine

Run with: python -m pytest tests/ -v
"""

import json

import pytest

from settlement_engine import SettlementEngine
from settlement_engine.processor import simulate_from_json


@pytest.fixture
def counterparty():
    """One bank with a revenue share table, a supplemental table and one agreement."""
    return {
        "id": "cp-1",
        "name": "Anadolu Bank",
        "counterparty_type": "Bank",
        "tables": [
            {
                "id": "t1",
                "pricing_model": "revenue_share",
                "product": "POS",
                "card_type": "Credit",
                "counterparty_split_percent": 60,
                "platform_split_percent": 40,
                "maturity_rates": [
                    {"term": "+7 days", "buy_rate": 1.0, "sell_rate": 1.5},
                    {"term": "+30 days", "buy_rate": 1.2, "sell_rate": 1.4, "enabled": False},
                ],
            },
            {
                "id": "s1",
                "pricing_model": "fixed_commission",
                "description": "Scheme rebate",
                "supplemental": {"code": "RB-1", "counterparty_percent": 0.2, "platform_percent": 0.3},
            },
        ],
        "groups": [
            {
                "id": "g1",
                "name": "2025 Agreement",
                "valid_from": "2025-01-01",
                "member_table_ids": ["t1", "s1"],
            }
        ],
    }


class TestComputeSettlement:
    """Test settlement computation through the dictionary API."""

    @pytest.fixture
    def engine(self):
        return SettlementEngine()

    @pytest.fixture
    def sample_input(self, counterparty):
        return {
            "record": {
                "id": "r-1",
                "counterparty_id": "cp-1",
                "group_id": "g1",
                "period": "2025-03",
                "status": "Draft",
                "volume_by_key": {"t1-+7 days": 100000, "s1": 10000},
            },
            "counterparties": [counterparty],
        }

    def test_basic_processing(self, engine, sample_input):
        result = engine.compute_settlement_from_dict(sample_input)

        assert result is not None
        assert "record" in result
        assert "totals" in result
        assert "computation" in result
        assert "cache" in result
        assert "lines" in result

    def test_totals_recomputed(self, engine, sample_input):
        result = engine.compute_settlement_from_dict(sample_input)

        # 500 gross (300/200) + rebate 20 / 30
        assert result["totals"]["source"] == "computed"
        assert result["totals"]["volume"] == 110000
        assert result["totals"]["gross"] == 550
        assert result["totals"]["counterparty_share"] == 320
        assert result["totals"]["platform_share"] == 230

    def test_cached_totals_win(self, engine, sample_input):
        sample_input["record"].update({
            "cached_volume": 1,
            "cached_counterparty_share": 2,
            "cached_platform_share": 3,
        })
        result = engine.compute_settlement_from_dict(sample_input)

        assert result["totals"]["source"] == "cached"
        assert result["totals"]["gross"] == 5
        # The fresh recomputation is still reported alongside
        assert result["computation"]["gross"] == 500

    def test_cache_fields(self, engine, sample_input):
        sample_input["record"]["deductions"] = {"platform_amount": 30}
        result = engine.compute_settlement_from_dict(sample_input)

        assert result["cache"] == {
            "cached_volume": 110000,
            "cached_counterparty_share": 320,
            "cached_platform_share": 200,
        }

    def test_lines(self, engine, sample_input):
        lines = engine.compute_settlement_from_dict(sample_input)["lines"]

        assert [line["key"] for line in lines] == ["t1-+7 days", "s1"]
        assert lines[0]["sequence"] == "01"
        assert lines[0]["rate"] == "1.00% / 1.50%"
        assert lines[0]["model"] == "Revenue Share"

    def test_group_name_is_live(self, engine, sample_input):
        sample_input["record"]["group_name"] = "Renamed since"
        assert engine.compute_settlement_from_dict(sample_input)["record"]["group_name"] == "2025 Agreement"

    def test_invalid_period(self, engine, sample_input):
        sample_input["record"]["period"] = "03/2025"
        with pytest.raises(ValueError, match="YYYY-MM"):
            engine.compute_settlement_from_dict(sample_input)

    def test_missing_record(self, engine, counterparty):
        with pytest.raises(KeyError):
            engine.compute_settlement_from_dict({"counterparties": [counterparty]})

    def test_unknown_counterparty_gives_zero(self, engine, sample_input):
        sample_input["counterparties"] = []
        result = engine.compute_settlement_from_dict(sample_input)

        assert result["totals"]["gross"] == 0
        assert result["lines"] == []

    def test_include_negative_flag(self, engine, sample_input, counterparty):
        rate = counterparty["tables"][0]["maturity_rates"][0]
        rate["buy_rate"], rate["sell_rate"] = 2.0, 1.5
        sample_input["include_negative"] = False
        result = engine.compute_settlement_from_dict(sample_input)

        assert result["computation"]["gross"] == -500
        assert result["computation"]["counterparty_share"] == 0
        assert result["computation"]["excluded_counterparty_count"] == 1
        assert result["computation"]["excluded_platform_count"] == 1


class TestOpenSettlement:
    """Test opening a draft settlement."""

    @pytest.fixture
    def engine(self):
        return SettlementEngine()

    def test_open_for_period(self, engine, counterparty):
        result = engine.open_settlement_from_dict({
            "counterparty": counterparty,
            "period": "2025-05",
            "record_id": "r-new",
        })

        assert result["id"] == "r-new"
        assert result["group_id"] == "g1"
        assert result["status"] == "Draft"
        assert result["volume_by_key"] == {}
        assert result["volume_keys"] == ["t1-+7 days", "s1"]

    def test_no_agreement_for_period(self, engine, counterparty):
        with pytest.raises(ValueError, match="covers period"):
            engine.open_settlement_from_dict({"counterparty": counterparty, "period": "2024-05"})

    def test_invalid_period(self, engine, counterparty):
        with pytest.raises(ValueError, match="YYYY-MM"):
            engine.open_settlement_from_dict({"counterparty": counterparty})


class TestBuildReport:
    """Test report output shape and rounding."""

    @pytest.fixture
    def engine(self):
        return SettlementEngine()

    def test_report(self, engine, counterparty):
        data = {
            "counterparties": [counterparty],
            "records": [
                {
                    "id": "r-1", "counterparty_id": "cp-1", "group_id": "g1", "period": "2025-02",
                    "status": "Finalized",
                    "cached_volume": 1000, "cached_counterparty_share": 1, "cached_platform_share": 2,
                },
                {
                    "id": "r-2", "counterparty_id": "cp-1", "group_id": "g1", "period": "2025-01",
                    "volume_by_key": {"t1-+7 days": 100000},
                },
            ],
            "filters": {"status": "all"},
        }
        result = engine.build_report_from_dict(data)

        assert result["summary"]["record_count"] == 2
        assert result["summary"]["finalized_count"] == 1
        assert result["summary"]["total_gross"] == 503
        assert result["summary"]["average_gross"] == 251.5
        # (1 + 300) / 503
        assert result["summary"]["counterparty_ratio_percent"] == 59.8
        assert [p["period"] for p in result["by_period"]] == ["2025-01", "2025-02"]
        assert result["by_counterparty"][0]["name"] == "Anadolu Bank"

    def test_malformed_entries_do_not_abort_report(self, engine, counterparty):
        """Unknown statuses read as Draft; broken records and unknown tables are skipped."""
        counterparty["tables"].append({"id": "x", "pricing_model": "flat_fee"})
        data = {
            "counterparties": [counterparty],
            "records": [
                {
                    "id": "r-1", "counterparty_id": "cp-1", "group_id": "g1", "period": "2025-02",
                    "status": "Finalized",
                    "cached_volume": 1000, "cached_counterparty_share": 6, "cached_platform_share": 4,
                },
                {
                    "id": "r-2", "counterparty_id": "cp-1", "group_id": "g1", "period": "2025-02",
                    "status": "Kesinlesmis",
                    "cached_volume": 500, "cached_counterparty_share": 3, "cached_platform_share": 2,
                },
                {"id": "r-3", "period": "2025-02"},
            ],
        }
        result = engine.build_report_from_dict(data)

        assert result["summary"]["record_count"] == 2
        assert result["summary"]["finalized_count"] == 1
        assert result["summary"]["draft_count"] == 1
        assert result["summary"]["total_gross"] == 15

    def test_unknown_status_still_rejected_for_single_settlement(self, engine, counterparty):
        record = {"counterparty_id": "cp-1", "group_id": "g1", "period": "2025-02", "status": "Paid"}
        with pytest.raises(ValueError, match="Invalid status"):
            engine.compute_settlement_from_dict({"record": record, "counterparties": [counterparty]})

    def test_empty_report(self, engine):
        result = engine.build_report_from_dict({"records": [], "counterparties": []})

        assert result["summary"]["record_count"] == 0
        assert result["summary"]["average_gross"] == 0
        assert result["by_counterparty"] == []


class TestSimulate:
    """Test simulation through the dictionary and JSON APIs."""

    @pytest.fixture
    def engine(self):
        return SettlementEngine()

    def test_simulation_output(self, engine, counterparty):
        result = engine.simulate_from_dict({"amount": 100000, "counterparties": [counterparty]})

        assert result["status"] == "ok"
        assert result["result_count"] == 1
        top = result["results"][0]
        assert top["rank"] == 1
        assert top["total_earning"] == 500
        assert top["margin_percent"] == 0.5
        assert top["rows"][0]["description"] == "sell 1.5% - buy 1.0% = 500.00"

    def test_no_data(self, engine):
        result = engine.simulate_from_dict({"amount": 100000, "counterparties": []})

        assert result["status"] == "no_data"
        assert result["results"] == []

    def test_non_positive_amount(self, engine, counterparty):
        with pytest.raises(ValueError, match="amount must be positive"):
            engine.simulate_from_dict({"amount": 0, "counterparties": [counterparty]})

    def test_json_api(self, counterparty):
        output = json.loads(simulate_from_json(json.dumps({"amount": "100000", "counterparties": [counterparty]})))
        assert output["results"][0]["total_earning"] == 500

    def test_json_api_validation_error(self):
        output = json.loads(simulate_from_json(json.dumps({"amount": -1})))
        assert output["status"] == "validation_failed"
        assert "amount must be positive" in output["error"]
