# keystone_network/utils.py
"""
Utility functions for configuration loading and creation, group manifests and logging setup.
"""

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .config import GroupInputs, KeystoneConfig
from .exceptions import MissingInputError, SchemaError

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# config file section -> KeystoneConfig fields it may set
CONFIG_SECTIONS = {
    'analysis': ('thresholds', 'top_fraction', 'min_common_taxa', 'robust_min_thresholds', 'score_weights'),
    'significance': ('significance_level', 'min_abs_correlation', 'strong_edge_threshold'),
    'output': ('output_formats', 'gephi_threshold', 'write_graphml', 'taxonomy_id_column'),
    'processing': ('max_workers',),
}


def _read_structured_file(path: Path) -> Dict:
    """Parse a YAML or JSON file into a dictionary."""
    if not path.is_file():
        raise MissingInputError(f"File not found: {path}")
    with open(path, 'r') as f:
        if path.suffix.lower() == '.json':
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SchemaError(f"{path} must contain a mapping at the top level")
    return data


def parse_thresholds(value: str) -> List[float]:
    """Parse a comma-separated threshold list such as ``"0.2,0.3,0.4"``."""
    try:
        return [float(v) for v in value.split(',') if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid threshold list: {value}")


def parse_group_spec(spec: str) -> GroupInputs:
    """
    Parse a ``NAME=COR[,PVAL]`` command line group specification.

    Args:
        spec: Group name, correlation matrix path and optional p-value matrix path.

    Returns:
        GroupInputs: The parsed group.

    Raises:
        argparse.ArgumentTypeError: If the specification is malformed.
    """
    name, sep, paths = spec.partition('=')
    parts = [p.strip() for p in paths.split(',')] if sep else []
    if not name.strip() or not parts or not parts[0] or len(parts) > 2:
        raise argparse.ArgumentTypeError(f"Expected NAME=COR[,PVAL], got: {spec}")
    return GroupInputs(
        group_id=name.strip(),
        correlation_matrix_path=parts[0],
        pvalue_matrix_path=parts[1] if len(parts) == 2 and parts[1] else None,
    )


def create_config_from_args(args: argparse.Namespace, config: Optional[KeystoneConfig] = None) -> KeystoneConfig:
    """Create configuration from command line arguments, on top of ``config`` when given."""
    config = config or KeystoneConfig()

    # Update config with provided arguments
    if getattr(args, 'thresholds', None):
        config.thresholds = args.thresholds
    if getattr(args, 'top_fraction', None):
        config.top_fraction = args.top_fraction
    if getattr(args, 'max_workers', None):
        config.max_workers = args.max_workers
    if getattr(args, 'output_format', None):
        config.output_formats = args.output_format.split(',')

    return config


def load_config_file(config_path: str) -> KeystoneConfig:
    """
    Load configuration from a YAML or JSON file.

    Recognized sections are ``analysis``, ``significance``, ``output`` and
    ``processing``. Unknown keys are logged and ignored.
    """
    config_dict = _read_structured_file(Path(config_path))

    # Create config object
    config = KeystoneConfig()

    # Update with file contents
    for section, fields in CONFIG_SECTIONS.items():
        section_config = config_dict.get(section) or {}
        for key, value in section_config.items():
            if key == 'formats':
                key = 'output_formats'
            if key in fields:
                setattr(config, key, value)
            else:
                logger.warning(f"Unknown configuration parameter: {section}.{key}")

    return config


def load_group_manifest(manifest_path: str) -> Dict:
    """
    Load the group manifest of a run.

    The manifest lists one entry per group under ``groups:`` with ``group_id``,
    ``correlation_matrix`` and the optional ``pvalue_matrix``, ``taxonomy`` and
    ``alternative_matrix``. Top-level ``taxonomy`` and ``node_metadata`` apply to
    every group. Relative paths are resolved against the manifest directory.

    Args:
        manifest_path: Path to the YAML or JSON manifest.

    Returns:
        dict: ``groups`` (List[GroupInputs]), ``taxonomy`` and ``node_metadata``
        (paths or None) and ``config`` (KeystoneConfig built from the same file).

    Raises:
        SchemaError: If a group entry lacks ``group_id`` or ``correlation_matrix``.
    """
    path = Path(manifest_path)
    data = _read_structured_file(path)
    base_dir = path.parent

    def resolve(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        p = Path(value)
        return str(p if p.is_absolute() else base_dir / p)

    entries = data.get('groups') or []
    if not isinstance(entries, list):
        raise SchemaError(f"'groups' in {path} must be a list")

    groups = []
    for i, entry in enumerate(entries):
        for required in ('group_id', 'correlation_matrix'):
            if not isinstance(entry, dict) or not entry.get(required):
                raise SchemaError(f"Group entry {i} in {path} is missing '{required}'")
        groups.append(GroupInputs(
            group_id=str(entry['group_id']),
            correlation_matrix_path=resolve(entry['correlation_matrix']),
            pvalue_matrix_path=resolve(entry.get('pvalue_matrix')),
            taxonomy_path=resolve(entry.get('taxonomy')),
            alternative_matrix_path=resolve(entry.get('alternative_matrix')),
        ))

    ids = [g.group_id for g in groups]
    if len(ids) != len(set(ids)):
        raise SchemaError(f"Duplicate group_id in {path}")

    logger.info(f"Loaded manifest {path} with {len(groups)} groups")
    return {
        'groups': groups,
        'taxonomy': resolve(data.get('taxonomy')),
        'node_metadata': resolve(data.get('node_metadata')),
        'config': load_config_file(str(path)),
    }


def setup_logging(output_dir: str, level: int = logging.INFO) -> Path:
    """
    Add a timestamped log file under ``output_dir`` to the root logger.

    Returns:
        Path: The log file.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = out / f"keystone_network_{timestamp}.log"

    handler = logging.FileHandler(log_file, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    if root.level > level or root.level == logging.NOTSET:
        root.setLevel(level)

    logger.info(f"Logging to: {log_file}")
    return log_file
