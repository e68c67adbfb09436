"""Log formatting for the API and the sweep workers.

Application modules log through ``logging.getLogger(__name__)``; structlog
only formats the records and merges whatever request or sweep context is
bound in the current task (trace id, caller, sweep name).
"""

import logging
import sys

import structlog

SERVICE_NAME = "leadbroker"

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def _add_service(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _renderer(json_output: bool):
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_level: str = "info", json_output: bool = False) -> None:
    """Route every stdlib logger through a single structlog formatter.

    Args:
        log_level: debug/info/warning/error.
        json_output: one JSON object per line when True, human-readable console otherwise.
    """
    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                _renderer(json_output),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(trace_id: str, **fields: str | None) -> None:
    """Attach ``trace_id`` and any non-empty ``fields`` (user_id, job_id...) to later log lines."""
    structlog.contextvars.bind_contextvars(
        trace_id=trace_id, **{k: v for k, v in fields.items() if v}
    )


def sweep_context(sweep: str):
    """Context manager tagging log lines with the running sweep's name."""
    return structlog.contextvars.bound_contextvars(sweep=sweep)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
