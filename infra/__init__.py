"""
AOF Stagger - Infrastructure Package

Ambient concerns shared by the fleet coordinator:
  - infra.config: YAML configuration, defaults, env overrides
  - infra.logging: JSON structured logging
  - infra.shutdown: broadcast shutdown signal
  - infra.connections: Redis clients built from config
"""
