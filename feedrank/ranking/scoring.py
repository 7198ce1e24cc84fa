"""
Per-item content scoring for posts and reels.

  engagement   = likes·1 + comments·3 + shares·5 + saves·2 + views·0.1
  locality     = 10 same city │ 5 same district │ 2 same province │ 0
  language     = 1.0 viewer wants both or match │ 0.5 otherwise
  relationship = own item (post 0, reel 2) │ followed author 1 │ other 0.3

  post final = 0.30·eng + 0.40·loc + 0.20·lang + 0.10·rel
  reel final = 0.25·eng + 0.35·loc + 0.20·lang + 0.15·rel + 0.05·1.2

Scoring is a pure function of a ContentSnapshot and a ViewerContext; it never
touches the persistence layer. Comment counts arrive pre-flattened (replies
included) from the caller.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional

from feedrank.enums import ContentKind, ContentType, Language, LanguagePreference

LIKE_WEIGHT = 1.0
COMMENT_WEIGHT = 3.0
SHARE_WEIGHT = 5.0
SAVE_WEIGHT = 2.0
VIEW_WEIGHT = 0.1

SAME_CITY_SCORE = 10.0
SAME_DISTRICT_SCORE = 5.0
SAME_PROVINCE_SCORE = 2.0

LANGUAGE_MATCH_SCORE = 1.0
LANGUAGE_MISMATCH_SCORE = 0.5

FOLLOWED_AUTHOR_SCORE = 1.0
OTHER_AUTHOR_SCORE = 0.3
# Own reels float to the top of the viewer's reel feed; own posts do not.
OWN_ITEM_SCORE = {ContentKind.POST: 0.0, ContentKind.REEL: 2.0}


@dataclass(frozen=True)
class Location:
    city: Optional[str] = None
    district: Optional[str] = None
    province: Optional[str] = None

    @classmethod
    def from_parts(cls, city, district, province) -> Optional["Location"]:
        if not (city or district or province):
            return None
        return cls(city=city, district=district, province=province)


@dataclass(frozen=True)
class ContentSnapshot:
    """Everything the scorer needs to know about one post or reel."""
    item_id: str
    author_id: str
    kind: ContentKind
    created_at: datetime
    content_type: ContentType = ContentType.TEXT
    language: Optional[Language] = None
    location: Optional[Location] = None
    likes: int = 0
    comments: int = 0
    shares: int = 0
    saves: int = 0
    views: int = 0


@dataclass(frozen=True)
class ViewerContext:
    viewer_id: str
    location: Optional[Location] = None
    language_preference: Optional[LanguagePreference] = None
    following: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ContentScores:
    engagement: float
    locality: float
    language: float
    relationship: float
    final: float


@dataclass(frozen=True)
class ScoreWeights:
    engagement: float
    locality: float
    language: float
    relationship: float
    bonus: float = 0.0

    def combine(self, engagement: float, locality: float, language: float, relationship: float) -> float:
        return (
            self.engagement * engagement
            + self.locality * locality
            + self.language * language
            + self.relationship * relationship
            + self.bonus
        )


POST_WEIGHTS = ScoreWeights(engagement=0.3, locality=0.4, language=0.2, relationship=0.1)
# Reels carry a fixed video bonus on top of the four score-bearing terms.
REEL_WEIGHTS = ScoreWeights(
    engagement=0.25, locality=0.35, language=0.2, relationship=0.15, bonus=0.05 * 1.2
)
WEIGHTS_BY_KIND = {ContentKind.POST: POST_WEIGHTS, ContentKind.REEL: REEL_WEIGHTS}


def engagement_score(item: ContentSnapshot) -> float:
    return (
        item.likes * LIKE_WEIGHT
        + item.comments * COMMENT_WEIGHT
        + item.shares * SHARE_WEIGHT
        + item.saves * SAVE_WEIGHT
        + item.views * VIEW_WEIGHT
    )


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a == b


def locality_score(item_location: Optional[Location], viewer_location: Optional[Location]) -> float:
    if item_location is None or viewer_location is None:
        return 0.0
    if _same(item_location.city, viewer_location.city):
        return SAME_CITY_SCORE
    if _same(item_location.district, viewer_location.district):
        return SAME_DISTRICT_SCORE
    if _same(item_location.province, viewer_location.province):
        return SAME_PROVINCE_SCORE
    return 0.0


def language_score(item_language: Optional[Language], preference: Optional[LanguagePreference]) -> float:
    if preference is LanguagePreference.BOTH:
        return LANGUAGE_MATCH_SCORE
    if item_language is not None and preference is not None and item_language.value == preference.value:
        return LANGUAGE_MATCH_SCORE
    return LANGUAGE_MISMATCH_SCORE


def relationship_score(item: ContentSnapshot, viewer: ViewerContext) -> float:
    if item.author_id == viewer.viewer_id:
        return OWN_ITEM_SCORE[item.kind]
    if item.author_id in viewer.following:
        return FOLLOWED_AUTHOR_SCORE
    return OTHER_AUTHOR_SCORE


class ContentScorer:
    """Computes sub-scores and the kind-specific weighted final score."""

    def __init__(self, weights: Optional[dict] = None) -> None:
        self._weights = dict(WEIGHTS_BY_KIND)
        if weights:
            self._weights.update(weights)

    def weights_for(self, kind: ContentKind) -> ScoreWeights:
        return self._weights[kind]

    def score(self, item: ContentSnapshot, viewer: ViewerContext) -> ContentScores:
        engagement = engagement_score(item)
        locality = locality_score(item.location, viewer.location)
        language = language_score(item.language, viewer.language_preference)
        relationship = relationship_score(item, viewer)
        final = self.weights_for(item.kind).combine(engagement, locality, language, relationship)
        return ContentScores(
            engagement=engagement,
            locality=locality,
            language=language,
            relationship=relationship,
            final=final,
        )
