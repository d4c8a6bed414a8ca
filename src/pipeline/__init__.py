"""Build orchestration."""
