"""Tests for package layout detection and parent folder determination."""

import logging

import pytest

from folder_structure_detector import FolderStructureDetector, determine_parent_folder, normalize_name
from tests.fakes import write_toc


def test_single_folder_is_parent():
    assert determine_parent_folder(['Bagnon'], 'Something Else') == 'Bagnon'


def test_display_name_match_wins_over_shortest():
    assert determine_parent_folder(['DBM', 'Deadly-Boss-Mods'], 'Deadly Boss Mods') == 'Deadly-Boss-Mods'


def test_unmatched_display_name_uses_shortest_prefix_folder():
    folders = ['Details_Compare2', 'Details', 'Details_DataStorage', 'Details_EncounterDetails']
    assert determine_parent_folder(folders, 'Details! Damage Meter') == 'Details'


def test_shortest_name_fallback():
    assert determine_parent_folder(['ElvUI_Options', 'ElvUI', 'ElvUI_Libraries'], 'Tukui Suite') == 'ElvUI'


def test_failed_prefix_check_is_logged_but_shortest_still_returned(caplog):
    with caplog.at_level(logging.INFO, logger='folder_structure_detector'):
        parent = determine_parent_folder(['Abc', 'Xyz_One', 'Qrs_Two'], 'Unrelated')

    assert parent == 'Abc'
    assert 'prefix of only 1/3' in caplog.text


def test_empty_folder_list_raises():
    with pytest.raises(ValueError):
        determine_parent_folder([], 'Anything')


def test_normalize_name():
    assert normalize_name('Details! Damage Meter') == 'detailsdamagemeter'
    assert normalize_name(None) == ''


def test_detects_root_level_addon_by_repo_name(tmp_path):
    package = tmp_path / 'clone'
    write_toc(package, {'Title': 'Foo'}, toc_name='Foo.toc')
    write_toc(package, {'Title': 'Foo'}, toc_name='Foo_Mainline.toc')

    folders = FolderStructureDetector().detect_addon_folders(package, 'Foo')

    assert [(f['name'], f['structure']) for f in folders] == [('Foo', 'root')]
    assert folders[0]['path'] == package


def test_detects_nested_addon_folders_and_skips_hidden(tmp_path):
    package = tmp_path / 'extract'
    write_toc(package / 'DBM-Core')
    write_toc(package / 'DBM-Raids')
    write_toc(package / '.github')
    (package / 'docs').mkdir()

    folders = FolderStructureDetector().detect_addon_folders(package)

    assert [f['name'] for f in folders] == ['DBM-Core', 'DBM-Raids']
    assert all(f['structure'] == 'nested' for f in folders)


def test_unwraps_single_wrapper_directory(tmp_path):
    package = tmp_path / 'extract'
    write_toc(package / 'WeakAuras-5.0.0' / 'WeakAuras')
    write_toc(package / 'WeakAuras-5.0.0' / 'WeakAurasOptions')

    folders = FolderStructureDetector().detect_addon_folders(package)

    assert [f['name'] for f in folders] == ['WeakAuras', 'WeakAurasOptions']


def test_no_toc_anywhere_returns_empty(tmp_path):
    (tmp_path / 'extract' / 'a').mkdir(parents=True)
    (tmp_path / 'extract' / 'b').mkdir()
    assert FolderStructureDetector().detect_addon_folders(tmp_path / 'extract') == []


def test_detect_embedded_libs(tmp_path):
    addon = write_toc(tmp_path / 'Bagnon')
    write_toc(addon / 'Libs' / 'LibStub')
    write_toc(addon / 'Libs' / 'AceDB-3.0')
    (addon / 'Libs' / 'NotALib').mkdir()

    assert FolderStructureDetector().detect_embedded_libs(addon) == ['AceDB-3.0', 'LibStub']
