"""
Library Detector
Heuristic classification of addon folders as standalone addons or libraries
"""

import re
from dataclasses import dataclass

from addon_registry import AddonKind

HIGH = 'high'
MEDIUM = 'medium'
LOW = 'low'

# Common WoW library naming conventions
LIBRARY_NAME_PATTERNS = [
    re.compile(r'^Lib[A-Z]'),           # LibStub, LibDBIcon, LibSharedMedia
    re.compile(r'^Ace[A-Z0-9]'),        # Ace3, AceAddon, AceDB
    re.compile(r'-\d+\.\d+$'),          # LibSharedMedia-3.0, CallbackHandler-1.0
    re.compile(r'^CallbackHandler'),
    re.compile(r'^LibStub$'),
]


@dataclass(frozen=True)
class LibraryDetectionResult:
    kind: AddonKind
    confidence: str
    reason: str


def matches_library_name(name):
    return any(pattern.search(name) for pattern in LIBRARY_NAME_PATTERNS)


def detect_library_kind(name, explicit_library=None, has_dependents=False, has_dependencies=False):
    """Classify a folder as addon or library.

    Rules are evaluated in order and the first match wins:
    1. TOC metadata ``## X-Library: true`` - high confidence
    2. Library naming convention (Lib*, Ace*, *-1.0) - medium confidence.
       An explicit False only means "not declared", so it does not block this rule.
    3. Depended on by something while depending on nothing - low confidence

    Args:
        name: str - Addon folder name
        explicit_library: Optional bool - X-Library flag from the TOC
        has_dependents: bool - Whether any other addon depends on this one
        has_dependencies: bool - Whether this addon declares dependencies

    Returns:
        LibraryDetectionResult - kind, confidence and reason
    """
    if explicit_library is True:
        return LibraryDetectionResult(AddonKind.LIBRARY, HIGH, 'TOC X-Library: true')

    if matches_library_name(name):
        return LibraryDetectionResult(AddonKind.LIBRARY, MEDIUM, 'Name matches library pattern')

    if has_dependents and not has_dependencies:
        return LibraryDetectionResult(AddonKind.LIBRARY, LOW, 'Only depended on, has no dependencies')

    return LibraryDetectionResult(AddonKind.ADDON, HIGH, 'Default classification')


class LibraryKindClassifier:
    """Default classifier used by the reconciler.

    Any object with a compatible ``classify`` method can replace it.
    """

    def classify(self, name, explicit_library=None, has_dependents=False, has_dependencies=False):
        return detect_library_kind(
            name,
            explicit_library=explicit_library,
            has_dependents=has_dependents,
            has_dependencies=has_dependencies,
        )
