"""
Task subsystem.

Components:
- task_models.py: data structures (Task, ChangeEvent, MutationIntent, ...)
- task_store.py: SQLite-backed storage that publishes every change
- change_feed.py: per-user subscriptions to those changes
- reconciler.py: in-memory collection merging local and remote changes
- rollover.py: once-a-day reset of recurring todos
- marker_store.py: durable "last rollover date" per user
"""
