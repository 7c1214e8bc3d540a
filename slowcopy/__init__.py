from .cancellation import CancellationGate, CancellationToken
from .checkpoint import CheckpointStore
from .coordinator import CopyCoordinator
from .estimator import estimate_next_chunk_size
from .job import CopyJob
from .models import CopyOutcome, CopyResult, CopySettings, CopySummary

__version__ = "0.1.0"

__all__ = [
    "CancellationGate",
    "CancellationToken",
    "CheckpointStore",
    "CopyCoordinator",
    "CopyJob",
    "CopyOutcome",
    "CopyResult",
    "CopySettings",
    "CopySummary",
    "estimate_next_chunk_size",
]
