"""Resolve a requested component name against the design catalog.

Matching rules:

* an exact, case-insensitive match on a component name wins outright;
* otherwise every name and alias is scored and candidates at or above the
  threshold are kept. The score is the mean of ``difflib.SequenceMatcher``'s
  ratio and token containment (the share of the requested name's tokens found
  in the candidate's tokens), raised to the ratio itself when that is higher,
  so a misspelling that shares no whole token (``pdfviewer``) still scores.
  A component scores as the best of its name and aliases;
* candidates are ranked by score, then by SequenceMatcher ratio, then by
  catalog declaration order.

A single non-exact candidate is only a suggestion and must be confirmed; several
candidates raise ``AmbiguousMatch``; none raise ``NotFound``.
"""

from __future__ import annotations

import logging
import re
from difflib import SequenceMatcher
from typing import Callable, Iterable, List, Optional, Sequence, Union

from .config import DEFAULT_MATCH_THRESHOLD
from .errors import AmbiguousMatch, ConfirmationRequired, NotFound
from .models import ComponentSpec, DesignDocument, MatchCandidate, Resolution
from .arch_logging import log_resolution


# Receives the requested name and ranked candidates; returns the chosen
# component name, or None to decline.
Confirmer = Callable[[str, List[MatchCandidate]], Optional[str]]

Catalog = Union[DesignDocument, Iterable[ComponentSpec]]

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

logger = logging.getLogger("archrun.resolver")


def _tokens(value: str) -> List[str]:
    return [token for token in _TOKEN_SPLIT.split(value.lower()) if token]


def similarity(requested: str, candidate: str) -> tuple[float, float]:
    """Return ``(score, ratio)`` for one requested name against one catalog string."""
    req_tokens = _tokens(requested)
    cand_tokens = _tokens(candidate)
    if not req_tokens or not cand_tokens:
        return 0.0, 0.0
    ratio = SequenceMatcher(None, " ".join(req_tokens), " ".join(cand_tokens)).ratio()
    containment = len(set(req_tokens) & set(cand_tokens)) / len(set(req_tokens))
    return max(ratio, (ratio + containment) / 2), ratio


def _components(catalog: Catalog) -> List[ComponentSpec]:
    if isinstance(catalog, DesignDocument):
        return list(catalog.components)
    return list(catalog)


class ComponentResolver:
    """Match requested names to catalog components without guessing."""

    def __init__(self, threshold: float = DEFAULT_MATCH_THRESHOLD):
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"Threshold must be in (0, 1], got {threshold}")
        self.threshold = threshold

    def rank(self, requested: str, catalog: Catalog) -> List[MatchCandidate]:
        """Score every component and return those at or above the threshold, best first."""
        candidates: List[MatchCandidate] = []
        for position, component in enumerate(_components(catalog)):
            best: Optional[MatchCandidate] = None
            for text in (component.name, *component.aliases):
                score, ratio = similarity(requested, text)
                if best is None or (score, ratio) > (best.score, best.ratio):
                    best = MatchCandidate(
                        name=component.name,
                        score=score,
                        ratio=ratio,
                        matched_on=text,
                        position=position,
                    )
            if best is not None and best.score >= self.threshold:
                candidates.append(best)

        candidates.sort(key=lambda item: (-item.score, -item.ratio, item.position))
        return candidates

    def resolve(self, requested: str, catalog: Catalog) -> Resolution:
        """Resolve ``requested`` to a component.

        Returns an exact Resolution, or a single-candidate suggestion whose
        ``requires_confirmation`` is True.

        Raises:
            NotFound: nothing in the catalog is similar enough.
            AmbiguousMatch: several components are plausible.
        """
        name = (requested or "").strip()
        if not name:
            raise ValueError("Component name cannot be empty")

        components = _components(catalog)
        for component in components:
            if component.key == name.lower():
                log_resolution(component.name, name, True)
                return Resolution(requested=name, component=component, exact=True)

        candidates = self.rank(name, components)
        if not candidates:
            logger.info(f"No component matches '{name}'")
            raise NotFound(name, [component.name for component in components])
        if len(candidates) > 1:
            logger.info(f"'{name}' is ambiguous between {[c.name for c in candidates]}")
            raise AmbiguousMatch(name, candidates)

        chosen = self._by_name(components, candidates[0].name)
        log_resolution(chosen.name, name, False, score=round(candidates[0].score, 3))
        return Resolution(requested=name, component=chosen, exact=False, candidates=candidates)

    def confirm_choice(self, requested: str, catalog: Catalog, choice: str) -> Resolution:
        """Accept an explicit pick for ``requested``; it must be an exact name or a ranked candidate."""
        components = _components(catalog)
        wanted = choice.strip().lower()

        try:
            resolution = self.resolve(requested, components)
            candidates = [resolution.component.name] if resolution.exact else [c.name for c in resolution.candidates]
            ranked = resolution.candidates
        except AmbiguousMatch as e:
            candidates = [candidate.name for candidate in e.candidates]
            ranked = e.candidates

        if wanted not in [name.lower() for name in candidates]:
            logger.info(f"Rejected pick '{choice}' for '{requested}'; candidates were {candidates}")
            if len(ranked) == 1:
                raise ConfirmationRequired(requested, ranked)
            if ranked:
                raise AmbiguousMatch(requested, ranked)
            raise NotFound(requested, [component.name for component in components])

        chosen = self._by_name(components, choice)
        exact = chosen.key == requested.strip().lower()
        return Resolution(
            requested=requested.strip(),
            component=chosen,
            exact=exact,
            candidates=ranked,
            confirmed=not exact,
        )

    def resolve_with(self, requested: str, catalog: Catalog, confirmer: Optional[Confirmer]) -> Resolution:
        """Resolve, blocking on ``confirmer`` for suggestions and ambiguities.

        Without a confirmer, anything but an exact match propagates as an error.
        """
        components = _components(catalog)
        try:
            resolution = self.resolve(requested, components)
        except AmbiguousMatch as e:
            if confirmer is None:
                raise
            choice = confirmer(e.requested, list(e.candidates))
            if choice is None:
                raise
            return self.confirm_choice(requested, components, choice)

        if not resolution.requires_confirmation:
            return resolution
        if confirmer is None:
            raise ConfirmationRequired(resolution.requested, resolution.candidates)

        choice = confirmer(resolution.requested, list(resolution.candidates))
        if choice is None:
            raise NotFound(resolution.requested, [component.name for component in components])
        return self.confirm_choice(requested, components, choice)

    @staticmethod
    def _by_name(components: Sequence[ComponentSpec], name: str) -> ComponentSpec:
        wanted = name.strip().lower()
        for component in components:
            if component.key == wanted:
                return component
        raise NotFound(name, [component.name for component in components])


def resolve(requested: str, catalog: Catalog, threshold: float = DEFAULT_MATCH_THRESHOLD) -> Resolution:
    """Module-level shortcut for ``ComponentResolver(threshold).resolve``."""
    return ComponentResolver(threshold).resolve(requested, catalog)
