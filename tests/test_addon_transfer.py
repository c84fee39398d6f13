"""Tests for exporting the addon list and analysing an import."""

import json

from addon_registry import AddonRecord, AddonType
from addon_transfer import analyze_import, export_addons, load_export


def sample_records():
    return [
        AddonRecord(folder='WeakAuras', type=AddonType.WAGO, url='https://addons.wago.io/addons/weakauras',
                    owned_folders=['WeakAurasOptions']),
        AddonRecord(folder='Plater', type=AddonType.GITHUB, url='https://github.com/Tercioo/Plater-Nameplates'),
        AddonRecord(folder='MyScripts'),
    ]


def test_export_writes_reinstallable_flags(tmp_path):
    output = tmp_path / 'addons.json'

    result = export_addons(sample_records(), output)

    assert result == {'success': True, 'count': 3}
    data = json.loads(output.read_text(encoding='utf-8'))
    assert data['version'] == 1
    assert 'exportedAt' in data
    weakauras, plater, scripts = data['addons']
    assert weakauras['type'] == 'wago'
    assert weakauras['ownedFolders'] == ['WeakAurasOptions']
    assert plater['reinstallable'] is True
    assert 'ownedFolders' not in plater
    assert scripts['reinstallable'] is False
    assert scripts['url'] is None


def test_export_to_unwritable_location_fails(tmp_path):
    result = export_addons(sample_records(), tmp_path / 'missing' / 'addons.json')
    assert result['success'] is False
    assert result['count'] == 0


def test_load_export_round_trip_and_analysis(tmp_path):
    output = tmp_path / 'addons.json'
    export_addons(sample_records(), output)

    loaded = load_export(output)
    assert loaded['success']

    analysis = analyze_import(loaded['data'], [AddonRecord(folder='weakauras')])
    assert [a['folder'] for a in analysis['already_installed']] == ['WeakAuras']
    assert [a['folder'] for a in analysis['to_install']] == ['Plater']
    assert [a['folder'] for a in analysis['manual']] == ['MyScripts']


def test_load_export_errors(tmp_path):
    assert load_export(tmp_path / 'nope.json')['error'].startswith('File not found')

    bad_json = tmp_path / 'bad.json'
    bad_json.write_text('{', encoding='utf-8')
    assert load_export(bad_json)['error'] == 'Failed to parse JSON'

    wrong_version = tmp_path / 'v2.json'
    wrong_version.write_text(json.dumps({'version': 2, 'exportedAt': 'x', 'addons': []}), encoding='utf-8')
    assert load_export(wrong_version)['error'].startswith('Invalid format')

    bad_type = tmp_path / 'type.json'
    bad_type.write_text(json.dumps({'version': 1, 'exportedAt': 'x', 'addons': [
        {'name': 'A', 'folder': 'A', 'type': 'curseforge', 'reinstallable': True},
    ]}), encoding='utf-8')
    assert 'unknown type' in load_export(bad_type)['error']
