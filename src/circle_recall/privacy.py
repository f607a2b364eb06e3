"""
Effective sharing between a circle policy and per-relationship privacy settings.

Per-relationship settings define the most an owner is willing to share with
one counterpart; a circle can only request up to that limit. Every function
here is pure.

Example:
    Alice hides health from Bob. Both are in a circle that shares health.
    Bob still cannot see Alice's health data.
"""

from typing import List, Optional, Set

from circle_recall.models import (
    CATEGORY_RECORD_TYPES,
    DATA_CATEGORIES,
    CircleSharingPolicy,
    EffectiveSharingPolicy,
    RelationshipPrivacySettings,
    SharingFlags,
)

CATEGORY_LABELS = {
    "health": "Health",
    "location": "Locations",
    "activities": "Activities",
    "diary": "Diary",
    "voice_notes": "Voice Notes",
    "photos": "Photos",
}

_RECORD_TYPE_CATEGORIES = {record_type: category for category, record_type in CATEGORY_RECORD_TYPES.items()}


def effective_sharing(
    circle: CircleSharingPolicy, relationship: RelationshipPrivacySettings
) -> EffectiveSharingPolicy:
    """
    Intersect a circle policy with relationship settings.

    A category is shared only if BOTH the circle and the relationship allow it.
    """
    return EffectiveSharingPolicy(
        **{
            category: bool(getattr(circle, category)) and bool(getattr(relationship, category))
            for category in DATA_CATEGORIES
        }
    )


def restricted_categories(
    circle: CircleSharingPolicy, relationship: RelationshipPrivacySettings
) -> Set[str]:
    """
    Categories the circle would share but the relationship settings hide.

    For explaining why data is hidden. Never use this to grant access.
    """
    return {
        category
        for category in DATA_CATEGORIES
        if getattr(circle, category) and not getattr(relationship, category)
    }


def has_restricted_sharing(
    circle: CircleSharingPolicy, relationship: RelationshipPrivacySettings
) -> bool:
    return bool(restricted_categories(circle, relationship))


def restricted_sharing_descriptions(
    circle: CircleSharingPolicy,
    relationship: RelationshipPrivacySettings,
    counterpart_name: str,
) -> List[str]:
    """Human-readable lines such as "Health (limited by your settings for Bob)"."""
    restricted = restricted_categories(circle, relationship)
    return [
        f"{CATEGORY_LABELS[category]} (limited by your settings for {counterpart_name})"
        for category in DATA_CATEGORIES
        if category in restricted
    ]


def default_relationship_settings() -> RelationshipPrivacySettings:
    """Settings for a new relationship: everything shared until the owner narrows it."""
    return RelationshipPrivacySettings(
        **{category: True for category in DATA_CATEGORIES}
    )


def deny_all_settings() -> RelationshipPrivacySettings:
    """What a missing relationship amounts to. Never substitute the defaults for it."""
    return RelationshipPrivacySettings(**{category: False for category in DATA_CATEGORIES})


def category_for_record_type(record_type: Optional[str]) -> Optional[str]:
    return _RECORD_TYPE_CATEGORIES.get(record_type) if record_type else None


def allowed_record_types(policy: SharingFlags) -> List[str]:
    """Record types a policy exposes, in category order."""
    return [
        CATEGORY_RECORD_TYPES[category]
        for category in DATA_CATEGORIES
        if getattr(policy, category)
    ]


def is_record_visible(policy: SharingFlags, record_type: Optional[str]) -> bool:
    """Whether a record of this type may be shown under the policy. Unknown types are denied."""
    category = category_for_record_type(record_type)
    if category is None:
        return False
    return bool(getattr(policy, category))
