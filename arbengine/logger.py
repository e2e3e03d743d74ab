"""
Structured logging configuration for the arbitrage analysis engine.
Uses structlog for rich, structured logging output.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from arbengine.config import MonitoringConfig


# Rich console for pretty output
console = Console(stderr=True)


def add_timestamp(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Add ISO timestamp to log events."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_component(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Ensure component is present in log events."""
    if "component" not in event_dict:
        event_dict["component"] = "engine"
    return event_dict


def setup_logging(config: Optional[MonitoringConfig] = None) -> None:
    """Configure structured logging for the host application."""
    config = config or MonitoringConfig()
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_time=True,
                show_path=False,
            )
        ],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        add_timestamp,
        add_component,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.debug_mode:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance bound to a specific component."""
    return structlog.get_logger().bind(component=component)


class AnalysisLogger:
    """Specialized logger for analysis outcomes."""

    def __init__(self):
        self.logger = get_logger("analysis")

    def log_opportunity_detected(
        self,
        candidate_id: str,
        spread_pct: float,
        net_spread_pct: float,
        cross_chain: bool,
    ) -> None:
        """Log a candidate that cleared the scanner margin."""
        self.logger.info(
            "opportunity_detected",
            candidate_id=candidate_id,
            spread=f"{spread_pct:.4f}%",
            net_spread=f"{net_spread_pct:.4f}%",
            cross_chain=cross_chain,
        )

    def log_decision(
        self,
        candidate_id: str,
        net_profit_usd: float,
        risk_score: float,
        recommendation: str,
        strategy: str,
        duration_ms: float,
    ) -> None:
        """Log a completed analysis."""
        self.logger.info(
            "decision",
            candidate_id=candidate_id,
            net_profit=f"${net_profit_usd:.2f}",
            risk=f"{risk_score:.3f}",
            recommendation=recommendation,
            strategy=strategy,
            duration_ms=f"{duration_ms:.1f}",
        )

    def log_stage_failure(
        self,
        candidate_id: str,
        stage: str,
        kind: str,
        message: str,
    ) -> None:
        """Log a stage that short-circuited an analysis."""
        self.logger.warning(
            "stage_failed",
            candidate_id=candidate_id,
            stage=stage,
            kind=kind,
            error=message,
        )

    def log_scan_summary(
        self,
        tokens: int,
        successful: int,
        failed: int,
        opportunities: int,
        cancelled: bool = False,
    ) -> None:
        """Log a batch scan summary."""
        self.logger.info(
            "scan_summary",
            tokens=tokens,
            successful=successful,
            failed=failed,
            opportunities=opportunities,
            cancelled=cancelled,
        )


# Global logger instance
analysis_logger = AnalysisLogger()
