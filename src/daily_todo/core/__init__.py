"""
Core contracts and the session context.

- ports.py: Protocols for the task store and the rollover marker storage
- errors.py: error taxonomy
- session.py: one user's session (single reaction queue)
"""
