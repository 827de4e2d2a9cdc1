"""
tickgate - shared schedules for fleets of workers.

Every worker polls the same schedules against one shared backend; a
per-schedule lock plus a shared last-run record make the fleet enqueue each
due occurrence once, without a central scheduler process.

- tickgate.core.scheduling: policies, due evaluation, runner, poller
- tickgate.core.events: observability sink
- tickgate.core.logging / settings / errors: ambient stack
"""

__version__ = "0.1.0"
