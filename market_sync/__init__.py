"""
Incremental synchronization of Pasardana stock, bond and mutual fund data
into a local SQLite database.

Modules:
- db: schema, snapshot reads and bulk writes
- models: typed API/storage records
- client: HTTP client and payload decoding
- watermark: per-key fetch windows from stored max dates
- workers: bounded fetch worker pool
- dedup: one record per (key, date)
- upsert: insert-vs-update partitioning for reference data
- reports: missing-period inserts and differential report updates
- timeseries: shared watermark -> fetch -> dedupe -> insert stage
- stocks, bonds, funds: per-family stages
- orchestrator: ordered, timed, failure-isolated sync cycles
- sync_service: facade wiring everything from settings
- scheduler: cron-triggered cycles (APScheduler)
"""
