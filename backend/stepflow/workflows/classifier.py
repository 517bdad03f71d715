# /stepflow/workflows/classifier.py

from typing import Optional

import structlog

from stepflow.models.flow import InboundEvent

log = structlog.get_logger(__name__)

# Label the classification table reserves for the unclassified/default case.
MAIN_LABEL = "main"


class StreamClassifier:
    """
    Maps an inbound event onto an optional stream override.

    The intent label itself is produced upstream by the NLU collaborator; this
    adapter only looks it up. A reply option the user picked carries its own
    target stream, which takes precedence over the intent label.
    """

    def __init__(self, flow_spec):
        self.flow_spec = flow_spec

    def resolve(self, event: InboundEvent) -> Optional[str]:
        if event.postback and event.postback.stream:
            target = event.postback.stream
            if target in self.flow_spec.streams:
                return target
            log.warning("Ignoring reply option for unknown stream.", stream=target)

        intent = event.recognized_intent
        if not intent or intent == MAIN_LABEL:
            return None
        return self.flow_spec.classifications.get(intent)
