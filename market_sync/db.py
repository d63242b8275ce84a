import datetime as dt
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pandas as pd

DB_PATH = os.environ.get("MARKET_DB_PATH", os.path.join(os.getcwd(), "market_data.sqlite"))

# Seconds a writer waits on a locked database before giving up.
BUSY_TIMEOUT = 30.0

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS stocks (
        code TEXT PRIMARY KEY,
        name TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stock_daily (
        code TEXT NOT NULL,
        date TEXT NOT NULL,
        opening_price REAL,
        closing_price REAL,
        high_price REAL,
        low_price REAL,
        volume REAL,
        market_cap REAL,
        created_at TEXT,
        PRIMARY KEY (code, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stock_reports (
        code TEXT NOT NULL,
        period TEXT NOT NULL,
        property_id INTEGER NOT NULL,
        value REAL,
        last_update TEXT,
        PRIMARY KEY (code, period, property_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bonds (
        code TEXT PRIMARY KEY,
        isin_code TEXT,
        name TEXT,
        type TEXT,
        bond_id INTEGER,
        interest_rate REAL,
        interest_type TEXT,
        interest_frequency_code TEXT,
        interest_frequency TEXT,
        issue_date TEXT,
        listing_date TEXT,
        mature_date TEXT,
        sharia INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bond_daily (
        bond_code TEXT NOT NULL,
        date TEXT NOT NULL,
        bond_id INTEGER,
        is_transacted INTEGER,
        date_based TEXT,
        high_price REAL,
        low_price REAL,
        last_price REAL,
        wap REAL,
        total_vol REAL,
        total_val REAL,
        freq REAL,
        one_day_return REAL,
        one_week_return REAL,
        mtd_return REAL,
        one_month_return REAL,
        three_month_return REAL,
        six_month_return REAL,
        ytd_return REAL,
        one_year_return REAL,
        three_year_return REAL,
        five_year_return REAL,
        ten_year_return REAL,
        inception_return REAL,
        ttm REAL,
        ytm REAL,
        current_yield REAL,
        modified_duration REAL,
        outstanding_amount REAL,
        additional_wap REAL,
        PRIMARY KEY (bond_code, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS funds (
        id INTEGER PRIMARY KEY,
        name TEXT,
        type INTEGER,
        active INTEGER,
        sharia INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_daily (
        fund_id INTEGER NOT NULL,
        date TEXT NOT NULL,
        value REAL,
        daily_return REAL,
        PRIMARY KEY (fund_id, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_aum (
        fund_id INTEGER NOT NULL,
        date TEXT NOT NULL,
        value REAL,
        PRIMARY KEY (fund_id, date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fund_unit (
        fund_id INTEGER NOT NULL,
        date TEXT NOT NULL,
        value REAL,
        PRIMARY KEY (fund_id, date)
    )
    """,
)


def init_db(db_path: Optional[str] = None):
    path = db_path or DB_PATH
    Path(os.path.dirname(os.path.abspath(path))).mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(path) as conn:
        cur = conn.cursor()
        # WAL lets snapshot reads proceed while workers write
        cur.execute("PRAGMA journal_mode=WAL")
        for statement in SCHEMA:
            cur.execute(statement)
        conn.commit()


@contextmanager
def get_conn(db_path: Optional[str] = None):
    path = db_path or DB_PATH
    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT)
    try:
        yield conn
    finally:
        conn.close()


def insert_many(table: str, columns: Iterable[str], rows: Iterable[Iterable], db_path: Optional[str] = None) -> None:
    """Bulk insert; rows whose primary key is already stored are left untouched."""
    cols = list(columns)
    placeholders = ",".join(["?"] * len(cols))
    sql = f"INSERT INTO {table} ({','.join(cols)}) VALUES ({placeholders}) ON CONFLICT DO NOTHING"
    with get_conn(db_path) as conn:
        conn.executemany(sql, rows)
        conn.commit()


def update_many(
    table: str,
    columns: Iterable[str],
    key_columns: Sequence[str],
    rows: Iterable[Iterable],
    db_path: Optional[str] = None,
) -> None:
    """Bulk update by key. Each row holds the `columns` values followed by the key values."""
    assignments = ",".join([f"{c}=?" for c in columns])
    where = " AND ".join([f"{k}=?" for k in key_columns])
    sql = f"UPDATE {table} SET {assignments} WHERE {where}"
    with get_conn(db_path) as conn:
        conn.executemany(sql, rows)
        conn.commit()


def _record_rows(records: Sequence) -> tuple:
    dumped = [r.model_dump(mode="json") for r in records]
    columns = list(dumped[0].keys())
    return columns, [tuple(d[c] for c in columns) for d in dumped]


def insert_records(records: Sequence, db_path: Optional[str] = None) -> int:
    """Insert typed records into the table their model declares."""
    if not records:
        return 0
    model = type(records[0])
    columns, rows = _record_rows(records)
    insert_many(model.TABLE, columns, rows, db_path=db_path)
    return len(rows)


def update_records(records: Sequence, db_path: Optional[str] = None) -> int:
    """Overwrite the non-key columns of already stored records."""
    if not records:
        return 0
    model = type(records[0])
    keys = list(model.KEY_COLUMNS)
    columns, rows = _record_rows(records)
    values = [c for c in columns if c not in keys]
    ordered = []
    for row in rows:
        by_col = dict(zip(columns, row))
        ordered.append(tuple(by_col[c] for c in values) + tuple(by_col[k] for k in keys))
    update_many(model.TABLE, values, keys, ordered, db_path=db_path)
    return len(ordered)


def update_report_values(updates: Sequence, db_path: Optional[str] = None) -> int:
    """Apply a batch of (code, period, property_id) -> (value, last_update) updates."""
    if not updates:
        return 0
    rows = [
        (
            u.value,
            u.last_update.isoformat() if u.last_update is not None else None,
            u.code,
            u.period,
            u.property_id,
        )
        for u in updates
    ]
    update_many("stock_reports", ["value", "last_update"], ["code", "period", "property_id"], rows, db_path=db_path)
    return len(rows)


def fetch_df(query: str, params: tuple = (), db_path: Optional[str] = None, parse_dates: Optional[List[str]] = None):
    with get_conn(db_path) as conn:
        df = pd.read_sql_query(query, conn, params=params, parse_dates=parse_dates)  # type: ignore
    return df


def max_date_per_key(table: str, key_column: str, db_path: Optional[str] = None) -> Dict[object, dt.date]:
    """Latest stored date per entity key, e.g. MAX(date) GROUP BY code."""
    df = fetch_df(
        f"SELECT {key_column} AS key, MAX(date) AS date FROM {table} GROUP BY {key_column}",
        db_path=db_path,
        parse_dates=["date"],
    )
    return {row.key: row.date.date() for row in df.itertuples(index=False) if pd.notna(row.date)}


def existing_keys(table: str, key_column: str, db_path: Optional[str] = None) -> Set:
    df = fetch_df(f"SELECT DISTINCT {key_column} AS key FROM {table}", db_path=db_path)
    return set(df["key"].tolist())


def current_report_periods(db_path: Optional[str] = None) -> Dict[str, Set[str]]:
    """Periods already stored per stock code."""
    df = fetch_df("SELECT DISTINCT code, period FROM stock_reports", db_path=db_path)
    if df.empty:
        return {}
    return {code: set(group["period"]) for code, group in df.groupby("code")}


def report_update_dates(db_path: Optional[str] = None) -> Dict[str, Dict[str, dt.date]]:
    """Latest stored last_update date per stock code and period, in the provider's own offset."""
    df = fetch_df(
        "SELECT code, period, MAX(substr(last_update, 1, 10)) AS date FROM stock_reports "
        "WHERE last_update IS NOT NULL GROUP BY code, period",
        db_path=db_path,
        parse_dates=["date"],
    )
    out: Dict[str, Dict[str, dt.date]] = {}
    for row in df.itertuples(index=False):
        if pd.isna(row.date):
            continue
        out.setdefault(row.code, {})[row.period] = row.date.date()
    return out
