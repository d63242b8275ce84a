import datetime as dt

from market_sync import db as dbmod
from market_sync.client import FetchError
from market_sync.models import Stock, StockReport
from market_sync.stocks import (
    REPORT_PERIODS_PATH,
    REPORTS_PATH,
    STOCK_DATA_PATH,
    STOCK_LIST_PATH,
    StockSync,
)

from conftest import FakeClient

TODAY = dt.date(2024, 1, 3)


def price(code, day, close):
    return {"Code": code, "Date": f"{day}T00:00:00", "ClosingPrice": close, "Volume": 1000}


def bbca_daily(params):
    return [
        price("BBCA", "2024-01-01", 9000),
        price("BBCA", "2024-01-02", 9100),
        price("BBCA", "2024-01-02", 9999),
        price("BBCA", "2024-01-03", 9200),
    ]


def report_payload(code, period, last_update, values):
    return {
        "Code": code,
        "Period": period,
        "LastUpdate": last_update,
        "Details": [{"PropertyId": i + 1, "Value": v} for i, v in enumerate(values)],
    }


def test_sync_stocks_upserts_and_skips_blank_codes(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="old name")], db_path=db_path)
    client = FakeClient({
        STOCK_LIST_PATH: [
            {"Code": "BBCA", "Name": "Bank Central Asia"},
            {"Code": "TLKM", "Name": "Telkom Indonesia"},
            {"Code": "  ", "Name": "blank"},
        ],
    })

    detail = StockSync(client, pool, db_path=db_path).sync_stocks()

    assert detail == {"updated": 1, "inserted": 1}
    assert client.calls_to(STOCK_LIST_PATH) == [
        {"pageBegin": 1, "pageLength": 9000, "sortField": "Code", "sortOrder": "ASC"}
    ]
    df = dbmod.fetch_df("SELECT code, name FROM stocks ORDER BY code", db_path=db_path)
    assert df.to_dict("records") == [
        {"code": "BBCA", "name": "Bank Central Asia"},
        {"code": "TLKM", "name": "Telkom Indonesia"},
    ]


def test_daily_sync_from_empty_store(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="Bank Central Asia")], db_path=db_path)
    client = FakeClient({STOCK_DATA_PATH: bbca_daily})

    detail = StockSync(client, pool, db_path=db_path).sync_daily(TODAY)

    assert client.calls_to(STOCK_DATA_PATH) == [
        {"code": "BBCA", "datestart": "1995-01-01", "dateend": "2024-01-04"}
    ]
    assert detail["rows"] == 3
    df = dbmod.fetch_df(
        "SELECT date, closing_price, created_at FROM stock_daily WHERE code = 'BBCA' ORDER BY date",
        db_path=db_path,
    )
    assert df["date"].tolist() == ["2024-01-01", "2024-01-02", "2024-01-03"]
    # first occurrence of the duplicated day is kept
    assert df["closing_price"].tolist() == [9000, 9100, 9200]
    assert set(df["created_at"]) == {"2024-01-03"}


def test_second_run_same_day_fetches_nothing(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="Bank Central Asia")], db_path=db_path)
    client = FakeClient({STOCK_DATA_PATH: bbca_daily})
    sync = StockSync(client, pool, db_path=db_path)

    sync.sync_daily(TODAY)
    detail = sync.sync_daily(TODAY)

    assert len(client.calls_to(STOCK_DATA_PATH)) == 1
    assert detail["planned"] == 0
    assert detail["skipped"] == 1


def test_next_day_resumes_after_watermark(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="Bank Central Asia")], db_path=db_path)
    client = FakeClient({STOCK_DATA_PATH: bbca_daily})
    sync = StockSync(client, pool, db_path=db_path)

    sync.sync_daily(TODAY)
    sync.sync_daily(TODAY + dt.timedelta(days=2))

    assert client.calls_to(STOCK_DATA_PATH)[-1] == {
        "code": "BBCA", "datestart": "2024-01-04", "dateend": "2024-01-06"
    }


def test_failing_code_does_not_block_others(db_path, pool):
    dbmod.insert_records(
        [Stock(code="BBCA", name="a"), Stock(code="BBRI", name="b"), Stock(code="TLKM", name="c")],
        db_path=db_path,
    )

    def daily(params):
        if params["code"] == "BBRI":
            return FetchError("GET StockAPI/GetStockData returned HTTP 500")
        return [price(params["code"], "2024-01-02", 100)]

    detail = StockSync(FakeClient({STOCK_DATA_PATH: daily}), pool, db_path=db_path).sync_daily(TODAY)

    assert detail["failed"] == 1
    assert detail["succeeded"] == 2
    maxes = dbmod.max_date_per_key("stock_daily", "code", db_path=db_path)
    assert maxes == {"BBCA": dt.date(2024, 1, 2), "TLKM": dt.date(2024, 1, 2)}


def test_missing_report_periods_are_inserted(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="a"), Stock(code="BBRI", name="b")], db_path=db_path)
    dbmod.insert_records(
        [stored_report("BBCA", "2023Q3", 1, 5.0, dt.datetime(2023, 11, 1))],
        db_path=db_path,
    )

    def reports(params):
        return [
            report_payload(params["codes"], period, "2024-01-02T08:00:00", (1.0, 2.0))
            for period in params["periods"].split(",")
        ]

    client = FakeClient({REPORT_PERIODS_PATH: ["2023Q4", "2023Q3"], REPORTS_PATH: reports})
    detail = StockSync(client, pool, db_path=db_path).sync_reports()

    requested = sorted((p["codes"], p["periods"]) for p in client.calls_to(REPORTS_PATH))
    assert requested == [("BBCA", "2023Q4"), ("BBRI", "2023Q4,2023Q3")]
    assert detail["rows"] == 6
    assert dbmod.current_report_periods(db_path=db_path) == {
        "BBCA": {"2023Q3", "2023Q4"},
        "BBRI": {"2023Q3", "2023Q4"},
    }


def test_stale_reports_are_rewritten(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="a"), Stock(code="TLKM", name="t")], db_path=db_path)
    dbmod.insert_records([
        stored_report("BBCA", "2023Q4", 1, 1.0, dt.datetime(2024, 1, 1, 8, 0)),
        stored_report("BBCA", "2023Q4", 2, 2.0, dt.datetime(2024, 1, 1, 8, 0)),
        stored_report("BBCA", "2023Q3", 1, 3.0, dt.datetime(2023, 11, 1, 8, 0)),
    ], db_path=db_path)

    def reports(params):
        return [
            report_payload("BBCA", "2023Q4", "2024-01-02T10:00:00", (10.0, 20.0)),
            report_payload("BBCA", "2023Q3", "2023-11-01T22:00:00", (99.0,)),
        ]

    client = FakeClient({REPORT_PERIODS_PATH: ["2023Q4", "2023Q3"], REPORTS_PATH: reports})
    detail = StockSync(client, pool, db_path=db_path).sync_report_updates()

    # TLKM has no stored reports, so nothing is requested for it
    assert [p["codes"] for p in client.calls_to(REPORTS_PATH)] == ["BBCA"]
    assert detail["updated"] == 1
    df = dbmod.fetch_df(
        "SELECT period, property_id, value FROM stock_reports ORDER BY period, property_id",
        db_path=db_path,
    )
    assert df.to_dict("records") == [
        {"period": "2023Q3", "property_id": 1, "value": 3.0},
        {"period": "2023Q4", "property_id": 1, "value": 10.0},
        {"period": "2023Q4", "property_id": 2, "value": 20.0},
    ]


def test_stage_order():
    sync = StockSync(FakeClient(), pool=None)
    assert [name for name, _ in sync.stages(TODAY)] == [
        "stock", "stock daily", "stock report", "stock report update",
    ]


def stored_report(code, period, prop, value, last_update):
    return StockReport(code=code, period=period, property_id=prop, value=value, last_update=last_update)


def test_daily_rows_without_code_take_the_requested_code(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="Bank Central Asia")], db_path=db_path)
    client = FakeClient({STOCK_DATA_PATH: [{"Date": "2024-01-02T00:00:00", "ClosingPrice": 1}]})

    detail = StockSync(client, pool, db_path=db_path).sync_daily(TODAY)

    assert detail["rows"] == 1
    assert dbmod.max_date_per_key("stock_daily", "code", db_path=db_path) == {"BBCA": dt.date(2024, 1, 2)}


def test_report_with_offset_timestamp_is_not_rewritten(db_path, pool):
    dbmod.insert_records([Stock(code="BBCA", name="a")], db_path=db_path)
    last_update = "2024-01-02T03:00:00+07:00"
    payload = report_payload("BBCA", "2023Q4", last_update, (1.0,))
    rows = [StockReport(code="BBCA", period="2023Q4", property_id=1, value=1.0, last_update=last_update)]
    dbmod.insert_records(rows, db_path=db_path)

    client = FakeClient({REPORT_PERIODS_PATH: ["2023Q4"], REPORTS_PATH: [payload]})
    detail = StockSync(client, pool, db_path=db_path).sync_report_updates()

    assert detail["updated"] == 0
    assert detail["failed_writes"] == 0
