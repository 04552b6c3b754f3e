"""
AOF Stagger - Fleet Package

Serializes AOF rewrites across co-located Redis instances:
  - fleet.status: INFO persistence parser
  - fleet.policy: growth-rate trigger policy
  - fleet.gate: per-instance readiness gate
  - fleet.scheduler: sequential fleet scheduler
  - fleet.instance: Instance protocol + Redis adapter
"""

from fleet.types import (
    FleetError, QueryError, ParseError, TriggerError,
    PersistenceSnapshot, GateAction, GateOutcome, GateResult, PassReport,
)
from fleet.status import parse_status
from fleet.policy import growth_rate_percent, should_fire, decide
from fleet.gate import ReadinessGate
from fleet.scheduler import FleetScheduler
