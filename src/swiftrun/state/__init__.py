"""State/store layer.

This package is the single source of truth for how intents and inbound
remote snapshots change the booking list, and for the rules that decide
whether a remote snapshot may replace local state.
"""
