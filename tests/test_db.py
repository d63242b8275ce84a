import datetime as dt

from market_sync import db as dbmod
from market_sync.models import FundDaily, ReportValueUpdate, StockDaily, StockReport


def test_init_db_is_idempotent(db_path):
    dbmod.init_db(db_path)
    df = dbmod.fetch_df("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name", db_path=db_path)
    assert set(df["name"]) >= {
        "stocks", "stock_daily", "stock_reports", "bonds", "bond_daily",
        "funds", "fund_daily", "fund_aum", "fund_unit",
    }


def test_reinserting_stored_rows_is_ignored(db_path):
    rows = [StockDaily(code="BBCA", date="2024-01-01", closing_price=9000)]
    dbmod.insert_records(rows, db_path=db_path)
    dbmod.insert_records([StockDaily(code="BBCA", date="2024-01-01", closing_price=1)], db_path=db_path)

    df = dbmod.fetch_df("SELECT code, date, closing_price FROM stock_daily", db_path=db_path)
    assert len(df) == 1
    assert df.loc[0, "closing_price"] == 9000


def test_max_date_per_key(db_path):
    dbmod.insert_records([
        FundDaily(fund_id=1, date="2024-01-01", value=1.0),
        FundDaily(fund_id=1, date="2024-01-05", value=1.1),
        FundDaily(fund_id=2, date="2023-12-29", value=2.0),
    ], db_path=db_path)

    out = dbmod.max_date_per_key("fund_daily", "fund_id", db_path=db_path)
    assert out == {1: dt.date(2024, 1, 5), 2: dt.date(2023, 12, 29)}


def test_max_date_per_key_empty_table(db_path):
    assert dbmod.max_date_per_key("stock_daily", "code", db_path=db_path) == {}
    assert dbmod.existing_keys("stocks", "code", db_path=db_path) == set()


def report(code, period, prop, value, last_update):
    return StockReport(code=code, period=period, property_id=prop, value=value, last_update=last_update)


def test_report_snapshots(db_path):
    dbmod.insert_records([
        report("BBCA", "2023Q3", 1, 1.0, dt.datetime(2023, 10, 30, 8, 0)),
        report("BBCA", "2023Q4", 1, 2.0, dt.datetime(2024, 1, 30, 8, 0)),
        report("BBRI", "2023Q4", 1, 3.0, dt.datetime(2024, 2, 1, 23, 59)),
    ], db_path=db_path)

    assert dbmod.current_report_periods(db_path=db_path) == {
        "BBCA": {"2023Q3", "2023Q4"},
        "BBRI": {"2023Q4"},
    }
    assert dbmod.report_update_dates(db_path=db_path) == {
        "BBCA": {"2023Q3": dt.date(2023, 10, 30), "2023Q4": dt.date(2024, 1, 30)},
        "BBRI": {"2023Q4": dt.date(2024, 2, 1)},
    }


def test_update_report_values(db_path):
    dbmod.insert_records([
        report("BBCA", "2023Q4", 1, 1.0, dt.datetime(2024, 1, 1)),
        report("BBCA", "2023Q4", 2, 2.0, dt.datetime(2024, 1, 1)),
        report("BBCA", "2023Q3", 1, 9.0, dt.datetime(2024, 1, 1)),
    ], db_path=db_path)

    new_time = dt.datetime(2024, 1, 2, 7, 0)
    dbmod.update_report_values([
        ReportValueUpdate("BBCA", "2023Q4", 1, 10.0, new_time),
        ReportValueUpdate("BBCA", "2023Q4", 2, 20.0, new_time),
    ], db_path=db_path)

    df = dbmod.fetch_df(
        "SELECT period, property_id, value, date(last_update) AS day FROM stock_reports ORDER BY period, property_id",
        db_path=db_path,
    )
    assert df.to_dict("records") == [
        {"period": "2023Q3", "property_id": 1, "value": 9.0, "day": "2024-01-01"},
        {"period": "2023Q4", "property_id": 1, "value": 10.0, "day": "2024-01-02"},
        {"period": "2023Q4", "property_id": 2, "value": 20.0, "day": "2024-01-02"},
    ]


def test_report_dates_keep_provider_offset(db_path):
    dbmod.insert_records(
        [StockReport.model_validate({
            "code": "BBCA", "period": "2023Q4", "property_id": 1, "value": 1.0,
            "last_update": "2024-01-02T03:00:00+07:00",
        })],
        db_path=db_path,
    )

    assert dbmod.report_update_dates(db_path=db_path) == {"BBCA": {"2023Q4": dt.date(2024, 1, 2)}}
