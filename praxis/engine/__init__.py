"""Engine: execution relay, reflection, metrics, ranking, feedback.

The service facade lives in ``praxis.engine.service``; this package only
re-exports schemas so storage modules can import them without cycles.
"""

from praxis.engine.schemas import (
    CollaborationReport,
    LeaderboardReport,
    MetricSnapshot,
    Outcome,
    Reflection,
    TuneReport,
)

__all__ = [
    "CollaborationReport",
    "LeaderboardReport",
    "MetricSnapshot",
    "Outcome",
    "Reflection",
    "TuneReport",
]
