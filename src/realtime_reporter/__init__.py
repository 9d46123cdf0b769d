from .core import (
    Message, PreconditionError, ScenarioState, ScenarioStatus,
    ErrorRecord, StackFrame, StackInfo, Snapshot, MetaStepRecord, StepRecord,
    StepCommentRecord, StepResultRecord, SuiteTestRecord, TestPassedRecord,
    TestFailedRecord, ExitRecord, RunFinishedRecord,
)
from .events import EventSource, HostEvent, install_rejection_hook
from .failures import FailureBridge, to_error
from .mapper import StepMapper, map_args
from .metasteps import MetaStepTracker, frames_equal
from .outbound import JsonLinesTransport, MemoryTransport, OutboundChannel
from .reporter import RealtimeReporter
from .session import ReporterSession
from .settings import ReporterSettings, current_settings, use_settings
from .snapshots import SnapshotPipeline, resolve_driver
from .stores import InMemoryScenarioStatusStore, InMemorySnapshotStore, JsonScenarioStatusStore
from .task_queue import RetryRule, TaskQueue
from .clocks import now_ms, now_utc

__all__ = [
    "Message", "PreconditionError", "ScenarioState", "ScenarioStatus",
    "ErrorRecord", "StackFrame", "StackInfo", "Snapshot", "MetaStepRecord", "StepRecord",
    "StepCommentRecord", "StepResultRecord", "SuiteTestRecord", "TestPassedRecord",
    "TestFailedRecord", "ExitRecord", "RunFinishedRecord",
    "EventSource", "HostEvent", "install_rejection_hook",
    "FailureBridge", "to_error", "StepMapper", "map_args", "MetaStepTracker", "frames_equal",
    "JsonLinesTransport", "MemoryTransport", "OutboundChannel", "RealtimeReporter",
    "ReporterSession", "ReporterSettings", "current_settings", "use_settings",
    "SnapshotPipeline", "resolve_driver",
    "InMemoryScenarioStatusStore", "InMemorySnapshotStore", "JsonScenarioStatusStore",
    "RetryRule", "TaskQueue", "now_ms", "now_utc",
]
