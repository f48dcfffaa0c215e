"""
GhostLayer Control Plane

The control plane is the single source of truth for subscription state.
Responsibilities:
- User, server node and join-request lifecycle
- Support message log with directional read receipts
- Periodic synchronization (daily settlement + usage accrual)
- Admin password and access-code authentication
- Versioned state document persistence and migration
"""
