"""
Proctoring Logger - Logs proctoring events and results
"""

import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def log_proctor_event(
    session_id: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log a proctoring event.

    Args:
        session_id: Proctoring session ID
        event_type: Type of event (session_start, violation, stop_prevented, ...)
        details: Optional event details
        level: Log level (debug, info, warning, error)
    """
    message = f"[PROCTOR] session={session_id} event={event_type}"

    if details:
        detail_str = " ".join(f"{k}={v}" for k, v in details.items())
        message += f" {detail_str}"

    if level == "debug":
        logger.debug(message)
    elif level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    else:
        logger.info(message)


def log_session_start(session_id: str, webcam: bool, microphone: bool, lockdown: bool):
    """Log monitoring start"""
    log_proctor_event(
        session_id=session_id,
        event_type="session_start",
        details={
            "webcam": webcam,
            "microphone": microphone,
            "lockdown": lockdown
        }
    )


def log_session_end(session_id: str, risk_score: float, total_violations: int):
    """Log monitoring stop"""
    log_proctor_event(
        session_id=session_id,
        event_type="session_end",
        details={
            "risk_score": round(risk_score, 2),
            "violations": total_violations
        }
    )


def log_violation_recorded(session_id: str, violation_type: str, severity: str, risk_score: float):
    """Log a violation appended to the ledger"""
    log_proctor_event(
        session_id=session_id,
        event_type="violation",
        details={
            "type": violation_type,
            "severity": severity,
            "risk_score": round(risk_score, 2)
        },
        level="warning"
    )


def log_capability_degraded(session_id: str, capability: str, reason: str):
    """Log a best-effort capability falling back to a weaker variant"""
    log_proctor_event(
        session_id=session_id,
        event_type="capability_degraded",
        details={"capability": capability, "reason": reason},
        level="warning"
    )


def log_stop_prevented(session_id: str):
    """Log a stop() call rejected by the stop latch"""
    log_proctor_event(
        session_id=session_id,
        event_type="stop_prevented",
        details={"reason": "exam_in_progress"}
    )
