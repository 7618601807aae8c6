"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, ScheduleEntry)
- task_store.py: SQLite-backed task documents + claim/release helpers
- schedule_store.py: per-schedule cycle minutes, cursors and transfer config ids
- task_scheduler.py: dispatch cycle with the conflict guard, plus the polling loop
- task_api.py: small high-level helpers used by the rest of the app
"""
