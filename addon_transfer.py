"""
Addon Transfer
Exports the installed addon list to a JSON file and reads it back for reinstalling
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from addon_registry import AddonType

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1
DEFAULT_EXPORT_PATH = Path.home() / 'wow-addon-manager-addons.json'

_ADDON_FIELDS = {
    'name': str,
    'folder': str,
    'type': str,
    'reinstallable': bool,
}


def export_addons(records, output_path=DEFAULT_EXPORT_PATH):
    """Write the addon list to a JSON file.

    Args:
        records: list - AddonRecord objects
        output_path: str/Path - Target file

    Returns:
        dict with 'success': bool, 'count': int and 'error' on failure
    """
    exported = []
    for record in records:
        entry = {
            'name': record.name,
            'folder': record.folder,
            'type': AddonType(record.type).value,
            'url': record.url,
            'reinstallable': record.type != AddonType.MANUAL and bool(record.url),
        }
        if record.owned_folders:
            entry['ownedFolders'] = list(record.owned_folders)
        exported.append(entry)

    export_file = {
        'version': EXPORT_VERSION,
        'exportedAt': datetime.now(timezone.utc).isoformat(),
        'addons': exported,
    }

    try:
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(export_file, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error("Failed to export addons: %s", e)
        return {'success': False, 'count': 0, 'error': str(e)}

    logger.info("Exported %d addons to %s", len(exported), output_path)
    return {'success': True, 'count': len(exported)}


def _validate_export(data):
    """Get the first problem with an export document, or None if valid."""
    if not isinstance(data, dict):
        return 'expected a JSON object'
    if data.get('version') != EXPORT_VERSION:
        return f"unsupported version {data.get('version')!r}"
    if not isinstance(data.get('exportedAt'), str):
        return 'missing exportedAt'
    if not isinstance(data.get('addons'), list):
        return 'missing addons list'

    valid_types = {addon_type.value for addon_type in AddonType}
    for index, addon in enumerate(data['addons']):
        if not isinstance(addon, dict):
            return f'addon {index} is not an object'
        for key, expected in _ADDON_FIELDS.items():
            if not isinstance(addon.get(key), expected):
                return f'addon {index} has an invalid {key}'
        if addon['type'] not in valid_types:
            return f"addon {index} has unknown type {addon['type']!r}"
        if addon.get('url') is not None and not isinstance(addon['url'], str):
            return f'addon {index} has an invalid url'
        owned = addon.get('ownedFolders')
        if owned is not None and not (isinstance(owned, list) and all(isinstance(o, str) for o in owned)):
            return f'addon {index} has invalid ownedFolders'
    return None


def load_export(file_path):
    """Read and validate an export file.

    Returns:
        dict with 'success': bool and 'data' (the export document) or 'error'
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return {'success': False, 'error': f'File not found: {file_path}'}

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except ValueError:
        logger.error("Failed to parse JSON in %s", file_path)
        return {'success': False, 'error': 'Failed to parse JSON'}
    except OSError as e:
        logger.error("Failed to read import file %s: %s", file_path, e)
        return {'success': False, 'error': str(e)}

    problem = _validate_export(data)
    if problem:
        logger.error("Invalid import file %s: %s", file_path, problem)
        return {'success': False, 'error': f'Invalid format: {problem}'}
    return {'success': True, 'data': data}


def analyze_import(export_data, records):
    """Sort exported addons by what reinstalling them needs.

    Args:
        export_data: dict - Validated export document
        records: list - Currently installed AddonRecord objects

    Returns:
        dict with 'to_install', 'already_installed' and 'manual' lists
    """
    installed = {record.folder.lower() for record in records}
    analysis = {'to_install': [], 'already_installed': [], 'manual': []}

    for addon in export_data['addons']:
        if not addon['reinstallable']:
            analysis['manual'].append(addon)
        elif addon['folder'].lower() in installed:
            analysis['already_installed'].append(addon)
        else:
            analysis['to_install'].append(addon)

    logger.info(
        "Analyzed import: %d to install, %d already installed, %d manual addons",
        len(analysis['to_install']), len(analysis['already_installed']), len(analysis['manual']),
    )
    return analysis
