"""
Policy enrichment for heuristic mass-assignment findings.

Attaches the declared mass-assignment intent (``intent_mode``,
``intent_allow``, ``intent_forbid``) of a model to ``mass-assignment``
findings about that model.  The model is matched by ``model_fqcn`` first,
then by short class name when that name is unique among the declared models.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List

from schemas.finding import Finding
from schemas.policy import GuardPolicy, ModelSpec

logger = logging.getLogger(__name__)

ENRICHED_CHECK = "mass-assignment"


class IntentEnricher:
    """Stateless enricher; see ``enrich``."""

    @staticmethod
    def enrich(findings: Iterable[Finding], policy: GuardPolicy) -> List[Finding]:
        findings = list(findings)
        if not policy.data.models:
            return findings

        short_names = IntentEnricher.unique_short_names(policy)
        return [IntentEnricher._enrich_finding(f, policy, short_names) for f in findings]

    @staticmethod
    def unique_short_names(policy: GuardPolicy) -> Dict[str, str]:
        """Map short class name -> FQCN for names declared exactly once."""
        counts = Counter(spec.short_name for spec in policy.data.models)
        return {
            spec.short_name: spec.fqcn
            for spec in policy.data.models
            if counts[spec.short_name] == 1
        }

    @staticmethod
    def _enrich_finding(finding: Finding, policy: GuardPolicy, short_names: Dict[str, str]) -> Finding:
        if finding.check != ENRICHED_CHECK:
            return finding

        fqcn = finding.context.get("model_fqcn")
        spec = policy.find_model(fqcn) if fqcn else None

        if spec is None:
            short_name = finding.context.get("model")
            if short_name and short_name in short_names:
                spec = policy.find_model(short_names[short_name])

        if spec is None:
            return finding
        return IntentEnricher._merge_intent(finding, spec)

    @staticmethod
    def _merge_intent(finding: Finding, spec: ModelSpec) -> Finding:
        extra: Dict[str, object] = {"intent_mode": spec.mode}
        if spec.allow:
            extra["intent_allow"] = list(spec.allow)
        if spec.forbid:
            extra["intent_forbid"] = list(spec.forbid)
        return finding.with_merged_context(extra)
