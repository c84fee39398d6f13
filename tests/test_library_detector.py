"""Tests for the addon/library classification heuristic."""

import pytest

from addon_registry import AddonKind
from library_detector import HIGH, LOW, MEDIUM, LibraryKindClassifier, detect_library_kind


def test_explicit_flag_is_high_confidence():
    result = detect_library_kind('SomeAddon', explicit_library=True)
    assert result.kind == AddonKind.LIBRARY
    assert result.confidence == HIGH


@pytest.mark.parametrize('name', [
    'LibStub', 'LibDBIcon-1.0', 'Ace3', 'AceGUI-3.0', 'CallbackHandler-1.0', 'LibSharedMedia-3.0',
])
def test_library_names_are_medium_confidence(name):
    result = detect_library_kind(name)
    assert result.kind == AddonKind.LIBRARY
    assert result.confidence == MEDIUM


def test_explicit_false_does_not_block_name_rule():
    result = detect_library_kind('LibStub', explicit_library=False)
    assert result.kind == AddonKind.LIBRARY
    assert result.confidence == MEDIUM


def test_depended_on_without_dependencies_is_low_confidence():
    result = detect_library_kind('Plumber', has_dependents=True, has_dependencies=False)
    assert result.kind == AddonKind.LIBRARY
    assert result.confidence == LOW


def test_depended_on_with_dependencies_is_addon():
    result = detect_library_kind('Plumber', has_dependents=True, has_dependencies=True)
    assert result.kind == AddonKind.ADDON


@pytest.mark.parametrize('name', ['WeakAuras', 'Details', 'ElvUI', 'Accessibility', 'Libertine'])
def test_default_is_addon(name):
    result = detect_library_kind(name)
    assert result.kind == AddonKind.ADDON
    assert result.confidence == HIGH
    assert result.reason == 'Default classification'


def test_classifier_delegates_to_heuristic():
    classifier = LibraryKindClassifier()
    assert classifier.classify('LibStub') == detect_library_kind('LibStub')
    assert classifier.classify('Bagnon', has_dependents=True).confidence == LOW
