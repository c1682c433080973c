"""
BundleWeaver v0.1.0

Configuration schema for BundleWeaver.

Defines all available configuration parameters with defaults and validation.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import copy
from typing import Dict, Any, Optional, List
from pathlib import Path
import yaml


# Default configuration values
DEFAULT_CONFIG = {
    # ========================================================================
    # Shimmer Sampling
    # ========================================================================
    'shimmer': {
        'k': 56,          # K-mer size (<= 64)
        'w': 80,          # First-pass minimizer window, in k-mer positions
        'r': 4,           # Reduction factor for the secondary minimizer pass
        'min_span': 64,   # Minimum distance between consecutive anchors
    },

    # ========================================================================
    # Anchor Index
    # ========================================================================
    'index': {
        'occurrence_ceiling': 1024,  # Anchors seen more often are excluded from bundling
        'n_shards': 16,              # Hash partitions for parallel insertion
    },

    # ========================================================================
    # Principal Bundles
    # ========================================================================
    'bundle': {
        'branch_dominance': 0.5,   # Successor share needed to continue a chain
        'repeat_threshold': 1,     # Traversals per contig allowed before 'R'
        'min_segment_length': 0,   # Drop projected segments shorter than this
        'merge_distance': 0,       # Merge split traversals across gaps up to this size
        'min_branch_size': 8,      # Prune bundles with this many anchors or fewer (0 keeps all)
        'min_cov': 0,              # Prune anchors visited fewer times than this
    },

    # ========================================================================
    # Structural-Variant Classification
    # ========================================================================
    'svcall': {
        'max_chain_span': 8,         # Anchor ordinals a block may skip
        'max_gap': 100000,           # Max bases between chained anchors
        'min_block_anchors': 1,
        'short_seq_len': 16,
        'end_check_len': 16,
        'length_diff': 128,
        'max_aln_size': 2048,
        'min_aln_score_ratio': 0.7,  # Score per base below which an alignment fails
    },

    # ========================================================================
    # Runtime
    # ========================================================================
    'runtime': {
        'threads': 1,
    },

    # ========================================================================
    # Output
    # ========================================================================
    'output': {
        'write_graphs': True,   # .mapg.gfa / .pmapg.gfa plus offset indexes
        'write_artifact': True,  # .pdb binary decomposition
        'logging': {
            'level': 'INFO',  # 'DEBUG', 'INFO', 'WARNING', 'ERROR'
            'log_file': None,
        },
    },
}


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Path to YAML config file (None = use defaults)

    Returns:
        Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path) as f:
                user_config = yaml.safe_load(f)

            if user_config:
                config = _deep_merge(config, user_config)

    return config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def save_config_template(output_path: Path, template: str = 'default'):
    """
    Save a configuration template to file.

    Args:
        output_path: Output file path
        template: Template type ('default', 'dense', 'sparse')
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Denser sampling for small genomes / short contigs
    if template == 'dense':
        config['shimmer'].update({'k': 31, 'w': 48, 'r': 2, 'min_span': 16})

    # Sparser sampling for large pangenome collections
    elif template == 'sparse':
        config['shimmer'].update({'k': 56, 'w': 80, 'r': 8, 'min_span': 128})
        config['index']['occurrence_ceiling'] = 4096

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration dictionary.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    shimmer = config.get('shimmer', {})
    k = shimmer.get('k', 0)
    w = shimmer.get('w', 0)
    r = shimmer.get('r', 0)
    for name, value in (('k', k), ('w', w), ('r', r)):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"shimmer.{name} must be an integer, got {value!r}")
    if not errors:
        if k < 1 or k > 64:
            errors.append(f"shimmer.k must be in [1, 64], got {k}")
        if k > w:
            errors.append(f"shimmer.k ({k}) must not exceed shimmer.w ({w})")
        if r <= 0:
            errors.append(f"shimmer.r must be > 0, got {r}")
    if shimmer.get('min_span', 0) < 0:
        errors.append("shimmer.min_span must be >= 0")

    index = config.get('index', {})
    if index.get('occurrence_ceiling', 1) < 1:
        errors.append("index.occurrence_ceiling must be >= 1")
    if index.get('n_shards', 1) < 1:
        errors.append("index.n_shards must be >= 1")

    bundle = config.get('bundle', {})
    dominance = bundle.get('branch_dominance', 0.5)
    if not 0.0 <= dominance < 1.0:
        errors.append(f"bundle.branch_dominance must be in [0, 1), got {dominance}")
    if bundle.get('repeat_threshold', 1) < 1:
        errors.append("bundle.repeat_threshold must be >= 1")
    if bundle.get('min_segment_length', 0) < 0:
        errors.append("bundle.min_segment_length must be >= 0")
    if bundle.get('merge_distance', 0) < 0:
        errors.append("bundle.merge_distance must be >= 0")
    if bundle.get('min_branch_size', 0) < 0:
        errors.append("bundle.min_branch_size must be >= 0")
    if bundle.get('min_cov', 0) < 0:
        errors.append("bundle.min_cov must be >= 0")

    svcall = config.get('svcall', {})
    if svcall.get('max_chain_span', 1) < 1:
        errors.append("svcall.max_chain_span must be >= 1")
    ratio = svcall.get('min_aln_score_ratio', 0.7)
    if not 0.0 <= ratio <= 1.0:
        errors.append(f"svcall.min_aln_score_ratio must be in [0, 1], got {ratio}")

    threads = config.get('runtime', {}).get('threads', 1)
    if not isinstance(threads, int) or threads < 1:
        errors.append(f"runtime.threads must be a positive integer, got {threads!r}")

    level = config.get('output', {}).get('logging', {}).get('level', 'INFO')
    if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
        errors.append(f"Invalid logging level: {level}")

    return errors

# BundleWeaver v0.1.0
# Any usage is subject to this software's license.
