"""Generation-output interpretation and delivery pipeline."""

from companion.agent.archival import ArchivalPipeline, ArchiveReport
from companion.agent.context import ContextBuilder
from companion.agent.delivery import DeliveryScheduler
from companion.agent.directives import DirectiveContext, DirectiveParser
from companion.agent.recall import DirectOutcome, EscalatedOutcome, RecallEscalation
from companion.agent.scheduled import ScheduledMessageDispatcher
from companion.agent.segmenter import DeliveryUnit, UnitKind, segment_response
from companion.agent.turn_runner import ChatTurnRunner, TurnResult

__all__ = [
    "ArchivalPipeline",
    "ArchiveReport",
    "ChatTurnRunner",
    "ContextBuilder",
    "DeliveryScheduler",
    "DeliveryUnit",
    "DirectOutcome",
    "DirectiveContext",
    "DirectiveParser",
    "EscalatedOutcome",
    "RecallEscalation",
    "ScheduledMessageDispatcher",
    "TurnResult",
    "UnitKind",
    "segment_response",
]
