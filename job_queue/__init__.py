"""
Job Queue — per-job action scheduling for the seller agent.

- Protocol notifications are ADMITTED by the scheduler (dedup, refresh, purge)
- Admitted tasks are DISPATCHED under a concurrency cap
- Failed attempts are RETRIED on a timer with exponential backoff
"""
