"""Keyword-cascade classification of rink session titles."""
import logging
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Pattern, Tuple

from processor.models import Category

logger = logging.getLogger(__name__)

EXACT = 'exact'
TITLE = 'title'
COMBINED = 'combined'


@dataclass(frozen=True)
class ClassificationRule:
    """
    One (pattern, category) entry of the cascade.

    scope decides what text the patterns see: the whole title compared
    for equality (exact), the title searched (title), or title plus
    description searched (combined). With match_all every pattern must
    match, otherwise any one is enough.
    """
    name: str
    scope: str
    patterns: Tuple[Pattern, ...]
    category: Category
    match_all: bool = False

    def matches(self, title: str, combined: str) -> bool:
        if self.scope == EXACT:
            return any(pattern.fullmatch(title) for pattern in self.patterns)
        text = combined if self.scope == COMBINED else title
        if self.match_all:
            return all(pattern.search(text) for pattern in self.patterns)
        return any(pattern.search(text) for pattern in self.patterns)


def _rule(name: str, scope: str, category: Category, *patterns: str,
          match_all: bool = False) -> ClassificationRule:
    return ClassificationRule(
        name=name,
        scope=scope,
        patterns=tuple(re.compile(pattern) for pattern in patterns),
        category=category,
        match_all=match_all,
    )


EXACT_RULES = [
    _rule('exact-stick-and-puck', EXACT, Category.STICK_AND_PUCK,
          r'stick (?:&|and) puck'),
    _rule('exact-public-skate', EXACT, Category.PUBLIC_SKATE, r'public skate'),
    _rule('exact-drop-in', EXACT, Category.DROP_IN_HOCKEY, r'drop[- ]in hockey'),
    _rule('exact-learn-to-skate', EXACT, Category.LEARN_TO_SKATE, r'learn to skate'),
    _rule('exact-freestyle', EXACT, Category.FIGURE_SKATING, r'freestyle'),
]

# Earlier entries pre-empt later, more general ones
KEYWORD_RULES = [
    _rule('closure', TITLE, Category.SPECIAL_EVENT,
          r'closed', r'holiday', r'memorial'),
    _rule('public-skate', TITLE, Category.PUBLIC_SKATE,
          r'public skate', r'open skate'),
    _rule('stick-and-puck', TITLE, Category.STICK_AND_PUCK,
          r'stick', r'puck', match_all=True),
    _rule('take-a-shot', TITLE, Category.STICK_AND_PUCK, r'take a shot'),
    _rule('drop-in', TITLE, Category.DROP_IN_HOCKEY,
          r'drop-in', r'drop in', r'pick-?up'),
    _rule('learn-to-skate', TITLE, Category.LEARN_TO_SKATE,
          r'learn', r'lesson', r'\blts\b'),
    _rule('figure-skating', TITLE, Category.FIGURE_SKATING,
          r'freestyle', r'figure'),
    _rule('practice', TITLE, Category.HOCKEY_PRACTICE,
          r'practice', r'training'),
    _rule('league', TITLE, Category.HOCKEY_LEAGUE, r'league', r'\bgames?\b'),
    _rule('social', TITLE, Category.SPECIAL_EVENT, r'broomball', r'party'),
]

DEFAULT_RULES: List[ClassificationRule] = (
    EXACT_RULES
    + KEYWORD_RULES
    + [replace(rule, name=f'{rule.name}-combined', scope=COMBINED) for rule in KEYWORD_RULES]
)


def _normalize(text: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', (text or '').lower()).strip()


class CategoryClassifier:
    """Maps a free-text title (and optional description) to a Category."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = list(rules if rules is not None else DEFAULT_RULES)

    def classify(self, title: Optional[str], description: Optional[str] = None) -> Category:
        """
        Evaluate the rules top to bottom; the first match wins.

        Unmatched text is assigned Category.OTHER.
        """
        normalized_title = _normalize(title)
        normalized_description = _normalize(description)
        combined = f"{normalized_title} {normalized_description}".strip()

        for rule in self.rules:
            if rule.scope == COMBINED and not normalized_description:
                continue
            if rule.matches(normalized_title, combined):
                logger.debug(f"Classified {title!r} as {rule.category.value} via {rule.name}")
                return rule.category

        return Category.OTHER
