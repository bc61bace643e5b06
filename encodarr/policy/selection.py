"""Stream selection and per-stream encoder settings.

Kinds are processed in the fixed order video, audio, subtitle. For each kind
the first probed stream matching any primary rule becomes the primary stream;
without a match video and audio fall back to the last probed stream of that
kind (subtitles have no fallback). Secondary streams are appended in probe
order. Encoder rules then fold their results onto ``OutputSettings()`` in
declaration order, so later rules win field by field.
"""

import json
import logging
from typing import List, Optional, Sequence

from encodarr.config.models import EncodingProfile, OutputSettings
from encodarr.domain.models import Stream, StreamKind
from encodarr.policy.rules import Log, RuleEvaluator


class StreamSelector:
    def __init__(self, logger: Optional[Log] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.evaluator = RuleEvaluator(self.logger)

    def select(self, source_streams: Sequence[Stream], profile: EncodingProfile) -> List[Stream]:
        """Return the ordered destination streams with resolved output settings."""
        destination: List[Stream] = []

        self.logger.debug("Selecting streams to include in output:")
        for kind in StreamKind:
            candidates = [s for s in source_streams if s.kind == kind]
            policy = profile.selection.for_kind(kind.value)

            primary: Optional[Stream] = None
            if policy is not None and policy.primary:
                primary = next(
                    (s for s in candidates if self.evaluator.any_match(policy.primary, s)),
                    None,
                )

            if primary is None and kind != StreamKind.SUBTITLE and candidates:
                primary = candidates[-1]
                self.logger.debug(
                    f"\tNo {kind.value} stream passed primary rules. Using the last available stream."
                )

            if primary is not None:
                chosen = primary.model_copy(update={"is_primary": True})
                destination.append(chosen)
                self.logger.debug(f"\t{json.dumps(chosen.summary())}")

            if policy is not None and policy.allow_secondary and policy.secondary:
                for stream in candidates:
                    if primary is not None and stream.index == primary.index:
                        continue
                    if self.evaluator.any_match(policy.secondary, stream):
                        extra = stream.model_copy(update={"is_primary": False})
                        destination.append(extra)
                        self.logger.debug(f"\t{json.dumps(extra.summary())}")

        self.logger.debug("Determining encoding settings:")
        return [self.resolve_output_settings(stream, profile) for stream in destination]

    def resolve_output_settings(self, stream: Stream, profile: EncodingProfile) -> Stream:
        settings = OutputSettings()
        for rule in profile.encoder_rules:
            if rule.kind != stream.kind.value:
                continue
            # Rules compose: later clauses may test fields earlier rules assigned
            candidate = stream.model_copy(update={"output": settings})
            if self.evaluator.evaluate(rule, candidate):
                settings = settings.merged(rule.result)

        resolved = stream.model_copy(update={"output": settings})
        shown = {"index": stream.index}
        if settings.is_copy:
            shown["codec"] = "copy"
        else:
            shown.update(settings.model_dump(exclude_none=True))
        self.logger.debug(f"\t{json.dumps(shown)}")
        return resolved


def select_streams(
    source_streams: Sequence[Stream], profile: EncodingProfile, logger: Optional[Log] = None
) -> List[Stream]:
    return StreamSelector(logger).select(source_streams, profile)
