"""Tests for TOC manifest parsing and flavor-specific TOC selection."""

import pytest

from tests.fakes import write_toc
from toc_parser import TocParser, select_toc_file, strip_flavor_suffix


def test_parse_reads_metadata_fields(tmp_path):
    folder = write_toc(tmp_path / 'Bagnon', {
        'Interface': '110002',
        'Title': '|cff00ff00Bagnon|r',
        'Version': '10.2.5',
        'Author': 'Jaliborc',
        'Dependencies': 'BagBrother, LibStub',
        'OptionalDeps': 'LibSharedMedia-3.0 LibDataBroker-1.1',
    })

    toc = TocParser().parse(folder)

    assert toc.title == 'Bagnon'
    assert toc.version == '10.2.5'
    assert toc.author == 'Jaliborc'
    assert toc.interface == '110002'
    assert toc.required_deps == ['BagBrother', 'LibStub']
    assert toc.optional_deps == ['LibSharedMedia-3.0', 'LibDataBroker-1.1']
    assert toc.explicit_library is None


def test_folder_without_toc_returns_none(tmp_path):
    (tmp_path / 'Empty').mkdir()
    assert TocParser().parse(tmp_path / 'Empty') is None


def test_missing_fields_default_to_none_and_title_to_folder():
    toc = TocParser().parse_content('## Interface: 110002\nCore.lua\n', 'MyAddon')

    assert toc.title == 'MyAddon'
    assert toc.version is None
    assert toc.author is None
    assert toc.required_deps == []
    assert toc.dependencies == []


def test_first_occurrence_wins_and_required_dep_aliases():
    toc = TocParser().parse_content(
        '## Version: 1\n## Version: 2\n## RequiredDeps: Ace3\n## X-Library: True\n', 'X'
    )

    assert toc.version == '1'
    assert toc.required_deps == ['Ace3']
    assert toc.explicit_library is True


def test_x_library_other_value_is_false():
    toc = TocParser().parse_content('## X-Library: no\n', 'X')
    assert toc.explicit_library is False


def test_dependencies_property_merges_required_first():
    toc = TocParser().parse_content('## Dependencies: A, B\n## OptionalDeps: B, C\n', 'X')
    assert toc.dependencies == ['A', 'B', 'C']


def test_parse_picks_flavor_toc(tmp_path):
    folder = tmp_path / 'Questie'
    write_toc(folder, {'Version': 'classic'}, toc_name='Questie-Classic.toc')
    write_toc(folder, {'Version': 'retail'}, toc_name='Questie_Mainline.toc')
    write_toc(folder, {'Version': 'base'}, toc_name='Questie.toc')

    assert TocParser('retail').parse(folder).version == 'retail'
    assert TocParser('classic').parse(folder).version == 'classic'
    assert TocParser('cata').parse(folder).version == 'base'


def test_select_toc_file_confidence_levels():
    assert select_toc_file('Foo', ['Foo.toc']) == ('Foo.toc', 'exact')
    assert select_toc_file('Foo', ['Foo-Retail.toc', 'Foo.toc']) == ('Foo-Retail.toc', 'exact')
    assert select_toc_file('Foo', ['Foo-Classic.toc', 'Foo.toc']) == ('Foo.toc', 'fallback')
    assert select_toc_file('Foo', ['Zed.toc', 'Bar.toc']) == ('Bar.toc', 'ambiguous')


def test_select_toc_file_requires_files():
    with pytest.raises(ValueError):
        select_toc_file('Foo', [])


def test_strip_flavor_suffix():
    assert strip_flavor_suffix('Questie_Mainline') == 'Questie'
    assert strip_flavor_suffix('Questie-Classic') == 'Questie'
    assert strip_flavor_suffix('Questie') == 'Questie'
