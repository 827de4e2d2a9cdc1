"""tickgate core -- scheduling primitives and their ambient stack.

Architecture::

    Layer 1 -- Types, errors, time
        errors.py          Error hierarchy (TickgateError, BackendIOError ...)
        timestamps.py      UTC helpers (stdlib-only)

    Layer 2 -- Ambient
        logging.py         structlog configuration
        settings.py        pydantic-settings worker configuration
        events/            Observability sink (Event, EventBus)

    Layer 3 -- Scheduling
        scheduling/        Policies, evaluator, runner, store, queue, locks, poller
"""
