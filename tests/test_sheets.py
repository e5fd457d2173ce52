"""Tests for the Sheets client, header parsing and row expansion."""

from unittest.mock import MagicMock

import pytest
import requests

from lpdash.cache import ReportCache
from lpdash.config import PLACEHOLDER_API_KEY, Settings
from lpdash.errors import SourceUnavailable, TransportFailure
from lpdash.sheets import BASE_URL, SheetsClient, parse_cell, parse_sheet_values
from lpdash.sources import SheetsDataSource, detect_merchants, expand_conversion_rows, expand_cost_rows

CONVERSION_VALUES = [
    ["日付", "LP番号", "媒体", "手法", "手法2", "acom_mCV", "acom_rCV", "acom_contract", "mobit_mCV", "mobit_rCV", "mobit_application", "aiful_mCV"],
    ["2025/1/28", "LP1", "Google", "Search", "A", "10", "4", "1", "0", "0", "0", ""],
    ["2025/1/29", "LP2", "Yahoo", "Display", "B", "0", "0", "0", "6", "3", "2", "1"],
]

COST_VALUES = [
    ["日付", "media", "手法", "手法2", "LP番号", "消化金額"],
    ["2025/1/28", "Google", "Search", "A", "LP1", "¥12,000"],
]


def response(status=200, payload=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status
    resp.text = "body"
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def settings():
    return Settings(google_api_key="key-123", spreadsheet_id="conv-sheet", cost_spreadsheet_id="cost-sheet")


class TestSheetsClient:
    def test_requires_credentials(self):
        with pytest.raises(SourceUnavailable):
            SheetsClient("", "sheet")

    def test_from_settings_unconfigured(self):
        assert SheetsClient.from_settings(Settings()) is None
        assert SheetsClient.from_settings(Settings(google_api_key=PLACEHOLDER_API_KEY, spreadsheet_id="x")) is None

    def test_api_key_alone_is_enough(self, session):
        client = SheetsClient.from_settings(Settings(google_api_key="k"), session=session)

        assert client is not None
        with pytest.raises(SourceUnavailable):
            client.fetch_values("Summary_Report")
        session.get.assert_not_called()

    def test_fetch_values(self, session):
        session.get.return_value = response(payload={"values": [["a"], ["1"]]})
        client = SheetsClient("key-123", "sheet-id", timeout=5, session=session)

        values = client.fetch_values("Summary Report", "A1:C10")

        assert values == [["a"], ["1"]]
        args, kwargs = session.get.call_args
        assert args[0] == f"{BASE_URL}/sheet-id/values/Summary%20Report%21A1%3AC10"
        assert kwargs["params"] == {"key": "key-123"}
        assert kwargs["timeout"] == 5

    def test_other_spreadsheet(self, session):
        session.get.return_value = response(payload={})
        client = SheetsClient("k", "sheet-id", session=session)

        assert client.fetch_values("Costs", spreadsheet_id="cost-id") == []
        assert "/cost-id/values/Costs" in session.get.call_args[0][0]

    def test_http_error_carries_api_message(self, session):
        session.get.return_value = response(status=403, payload={"error": {"message": "API key not valid"}})
        client = SheetsClient("k", "s", session=session)

        with pytest.raises(TransportFailure, match="403.*API key not valid"):
            client.fetch_values("Summary_Report")

    def test_network_error(self, session):
        session.get.side_effect = requests.ConnectionError("boom")
        client = SheetsClient("k", "s", session=session)

        with pytest.raises(TransportFailure):
            client.fetch_values("Summary_Report")

    def test_malformed_json(self, session):
        session.get.return_value = response(json_error=True)
        client = SheetsClient("k", "s", session=session)

        with pytest.raises(TransportFailure, match="Malformed"):
            client.fetch_values("Summary_Report")


class TestParsing:
    def test_parse_cell(self):
        assert parse_cell("12") == 12
        assert parse_cell("1.5") == 1.5
        assert parse_cell("") == ""
        assert parse_cell("LP1") == "LP1"
        assert parse_cell(None) == ""

    def test_headers_and_blank_rows(self):
        rows = parse_sheet_values([["Date", "LP Number", "acom_mCV"], ["2025/1/1", "LP1", "3"], ["", ""], ["2025/1/2"]])

        assert rows == [
            {"date": "2025/1/1", "lp_number": "LP1", "acom_mcv": 3},
            {"date": "2025/1/2", "lp_number": "", "acom_mcv": ""},
        ]

    def test_empty(self):
        assert parse_sheet_values([]) == []
        assert parse_sheet_values(None) == []


class TestExpansion:
    def test_detect_merchants(self):
        headers = parse_sheet_values(CONVERSION_VALUES)[0].keys()
        assert detect_merchants(headers) == ["acom", "mobit", "aiful"]

    def test_fan_out(self):
        df = expand_conversion_rows(parse_sheet_values(CONVERSION_VALUES))

        assert list(zip(df["lp_number"], df["merchant"])) == [
            ("LP1", "acom"),
            ("LP1", "aiful"),
            ("LP2", "mobit"),
            ("LP2", "aiful"),
        ]
        acom = df.iloc[0]
        assert (acom["date"], acom["media"], acom["method"], acom["method2"]) == ("2025/1/28", "Google", "Search", "A")
        assert (acom["mcv"], acom["rcv"], acom["results"]) == (10.0, 4.0, 1.0)
        assert df.iloc[2]["results"] == 2.0
        assert df.iloc[1][["mcv", "rcv", "results"]].tolist() == [0.0, 0.0, 0.0]
        assert df["cost"].sum() == 0.0

    def test_promise_withdrawal_and_rcv_fallback(self):
        rows = [{"date": "2025-01-01", "lp": "LP5", "promise_mcv": 5, "promise_rcv数": 2, "promise_withdrawal": 1, "promise_contract": 9}]
        df = expand_conversion_rows(rows)

        promise = df[df["merchant"] == "promise"].iloc[0]
        assert promise["lp_number"] == "LP5"
        assert promise["rcv"] == 2.0
        assert promise["results"] == 1.0

    def test_no_merchant_columns(self):
        assert expand_conversion_rows([{"date": "2025-01-01"}]).empty
        assert expand_conversion_rows([]).empty

    def test_cost_rows(self):
        df = expand_cost_rows(parse_sheet_values(COST_VALUES))

        assert df.iloc[0].to_dict() == {
            "date": "2025/1/28",
            "media": "Google",
            "lp_number": "LP1",
            "method": "Search",
            "method2": "A",
            "total_cost": 12000.0,
        }


class TestSheetsDataSource:
    def test_unconfigured_returns_none(self):
        source = SheetsDataSource(Settings())
        assert source.fetch_conversions() is None
        assert source.fetch_costs() is None

    def test_fetch_and_cache(self, settings, tmp_path):
        client = MagicMock()
        client.fetch_values.return_value = CONVERSION_VALUES
        cache = ReportCache(tmp_path / "cache.sqlite3")
        source = SheetsDataSource(settings, client=client, cache=cache)

        first = source.fetch_conversions()
        second = source.fetch_conversions()

        assert len(first) == len(second) == 4
        client.fetch_values.assert_called_once_with("Summary_Report", spreadsheet_id="conv-sheet")
        assert cache.get("conv-sheet:Summary_Report") is not None

    def test_force_refresh_skips_cache(self, settings, tmp_path):
        client = MagicMock()
        client.fetch_values.return_value = CONVERSION_VALUES
        source = SheetsDataSource(settings, client=client, cache=ReportCache(tmp_path / "cache.sqlite3"))

        source.fetch_conversions()
        source.fetch_conversions(force_refresh=True)

        assert client.fetch_values.call_count == 2

    def test_cache_only_miss_is_empty(self, settings, tmp_path):
        client = MagicMock()
        source = SheetsDataSource(settings, client=client, cache=ReportCache(tmp_path / "cache.sqlite3"))

        conversions = source.fetch_conversions(cache_only=True)
        costs = source.fetch_costs(cache_only=True)

        assert conversions is not None and conversions.empty
        assert costs is not None and costs.empty
        client.fetch_values.assert_not_called()

    def test_empty_cost_sheet_is_none(self, settings):
        client = MagicMock()
        client.fetch_values.return_value = []
        source = SheetsDataSource(settings, client=client)

        assert source.fetch_costs() is None
        client.fetch_values.assert_called_once_with("広告費まとめ_LP別", spreadsheet_id="cost-sheet")

    def test_transport_errors_propagate(self, settings):
        client = MagicMock()
        client.fetch_values.side_effect = TransportFailure("boom")
        source = SheetsDataSource(settings, client=client)

        with pytest.raises(TransportFailure):
            source.fetch_conversions()

    def test_cost_sheet_without_conversion_sheet(self, session):
        settings = Settings(google_api_key="k", spreadsheet_id="", cost_spreadsheet_id="COSTID")
        session.get.return_value = response(payload={"values": COST_VALUES})
        source = SheetsDataSource(settings, client=SheetsClient.from_settings(settings, session=session))

        assert SheetsDataSource(settings).client is not None
        assert source.fetch_conversions() is None
        costs = source.fetch_costs()

        assert costs["total_cost"].tolist() == [12000.0]
        assert "/COSTID/values/" in session.get.call_args[0][0]
