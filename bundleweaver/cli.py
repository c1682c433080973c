#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Command-line interface for BundleWeaver.

This module provides the main CLI entry point and all subcommands for
principal-bundle decomposition and structural-variant classification.
"""

import shlex
import sys
import click
from pathlib import Path
import yaml

from .version import __version__
from .config.parser import ConfigParser
from .config.schema import load_config, save_config_template, validate_config
from .exceptions import BundleWeaverError


def _command_line() -> str:
    return "bundleweaver " + " ".join(shlex.quote(a) for a in sys.argv[1:])


def _load_run_config(config_file, overrides):
    """Defaults + config file + CLI overrides, validated."""
    parser = ConfigParser(config_file)
    parser.merge_cli_overrides(overrides)
    parser.validate()
    return parser.to_dict()


def _configure_logging(ctx, config, output_prefix):
    from .utils.pipeline import setup_logging

    if ctx.obj.get('VERBOSE'):
        level = 'DEBUG'
    elif ctx.obj.get('QUIET'):
        level = 'WARNING'
    else:
        level = config['output']['logging']['level']
    setup_logging(
        level=level,
        log_file=config['output']['logging'].get('log_file'),
        output_dir=Path(output_prefix).parent,
    )


def _fail(ctx, message):
    click.echo(f"✗ {message}", err=True)
    ctx.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, verbose, quiet):
    """
    BundleWeaver: Principal Bundle Decomposition for Contig Collections

    Reduces a set of genome contigs to shared sparse anchors, builds a
    multi-contig anchor graph, collapses it into principal bundles and
    projects them back onto every contig. Also classifies structural
    variant candidates between query and target contigs.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet


# ============================================================================
# Configuration Management Commands
# ============================================================================

@main.group()
def config():
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', type=click.Path(), default='bundleweaver_config.yaml',
              help='Output configuration file path')
@click.option('--template', '-t', type=click.Choice(['default', 'dense', 'sparse']),
              default='default', help='Configuration template type')
@click.pass_context
def config_init(ctx, output, template):
    """Generate a template configuration file with all available parameters."""
    click.echo(f"Generating {template} configuration template: {output}")
    try:
        save_config_template(Path(output), template=template)
    except OSError as e:
        _fail(ctx, f"Error creating configuration: {e}")
    click.echo(f"✓ Configuration file created: {output}")


@config.command('validate')
@click.argument('config_file', type=click.Path(exists=True))
@click.pass_context
def config_validate(ctx, config_file):
    """Validate a configuration file."""
    click.echo(f"Validating configuration file: {config_file}")
    try:
        cfg = load_config(Path(config_file))
    except (OSError, yaml.YAMLError) as e:
        _fail(ctx, f"Error reading configuration: {e}")
    errors = validate_config(cfg)
    if errors:
        click.echo("\n✗ Configuration validation failed:", err=True)
        for error in errors:
            click.echo(f"  • {error}", err=True)
        ctx.exit(1)

    click.echo("✓ Configuration is valid")
    shimmer = cfg['shimmer']
    click.echo("\nKey Settings:")
    click.echo(f"  Shimmer: k={shimmer['k']} w={shimmer['w']} r={shimmer['r']} min_span={shimmer['min_span']}")
    click.echo(f"  Occurrence ceiling: {cfg['index']['occurrence_ceiling']}")
    click.echo(f"  Threads: {cfg['runtime']['threads']}")


@config.command('show')
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--format', '-f', type=click.Choice(['yaml', 'summary']), default='summary',
              help='Output format')
@click.pass_context
def config_show(ctx, config_file, format):
    """Display configuration settings."""
    try:
        cfg = load_config(Path(config_file))
    except (OSError, yaml.YAMLError) as e:
        _fail(ctx, f"Error reading configuration: {e}")

    if format == 'yaml':
        click.echo(yaml.dump(cfg, default_flow_style=False, sort_keys=False))
        return

    click.echo(f"Configuration from: {config_file}")
    click.echo("=" * 60)
    for section in ('shimmer', 'index', 'bundle', 'svcall', 'runtime'):
        click.echo(f"\n{section}:")
        for key, value in cfg.get(section, {}).items():
            click.echo(f"  {key}: {value}")


# ============================================================================
# Decomposition
# ============================================================================

def _shimmer_options(f):
    f = click.option('--threads', '-t', type=int, default=None,
                     help='Worker threads (default: from config)')(f)
    f = click.option('--min-span', type=int, default=None,
                     help='Minimum distance between consecutive anchors')(f)
    f = click.option('-r', 'reduction', type=int, default=None,
                     help='Reduction factor of the secondary minimizer pass')(f)
    f = click.option('-w', 'window', type=int, default=None,
                     help='First-pass minimizer window')(f)
    f = click.option('-k', 'kmer', type=int, default=None,
                     help='K-mer size (<= 64)')(f)
    f = click.option('--config', '-c', 'config_file', type=click.Path(exists=True),
                     help='Configuration file (YAML)')(f)
    return f


def _overrides(kmer, window, reduction, min_span, threads, **extra):
    overrides = {
        'shimmer.k': kmer,
        'shimmer.w': window,
        'shimmer.r': reduction,
        'shimmer.min_span': min_span,
        'runtime.threads': threads,
    }
    overrides.update(extra)
    return overrides


@main.command()
@click.argument('fasta', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--output', '-o', 'prefix', required=True, type=click.Path(),
              help='Output prefix')
@_shimmer_options
@click.option('--repeat-threshold', type=int, default=None,
              help='Traversals per contig above which a bundle is a repeat')
@click.option('--occurrence-ceiling', type=int, default=None,
              help='Anchors seen more often are excluded from the graph')
@click.option('--min-branch-size', type=int, default=None,
              help='Prune bundles with this many anchors or fewer (0 keeps all)')
@click.option('--min-cov', type=int, default=None,
              help='Prune anchors visited fewer times than this across all contigs')
@click.option('--include', 'include_file', type=click.Path(exists=True),
              help='File of contig names (one per line) to decompose')
@click.option('--precomputed-bundles', 'precomputed', type=click.Path(exists=True),
              help='Project contigs onto the bundles of an earlier .pdb artifact')
@click.option('--no-graphs', is_flag=True, help='Skip GFA graph output')
@click.pass_context
def decomp(ctx, fasta, prefix, config_file, kmer, window, reduction, min_span, threads,
           repeat_threshold, occurrence_ceiling, min_branch_size, min_cov, include_file,
           precomputed, no_graphs):
    """
    Decompose contigs into principal bundles.

    Writes PREFIX.bed, PREFIX.ctg.summary.tsv, PREFIX.mapg.gfa/.idx,
    PREFIX.pmapg.gfa/.idx, PREFIX.pdb and PREFIX.params.yaml.

    With --precomputed-bundles the contigs are projected onto the bundles
    stored in an earlier artifact, whose shimmer and bundle settings are
    used. Only the BED, summary and manifest are written in that mode.

    Examples:
        bundleweaver decomp asm1.fa asm2.fa -o out/pangenome
        bundleweaver decomp contigs.fa -o out/run -k 31 -w 48 -r 2 -t 8
        bundleweaver decomp new.fa -o out/new --precomputed-bundles out/pangenome.pdb
    """
    from .io.io_core_module import load_sequences, read_name_list, select_records
    from .io_utils.pdb_codec import load_decomposition
    from .utils.pipeline import RunContext, run_decomposition, write_outputs

    try:
        cfg = _load_run_config(config_file, _overrides(
            kmer, window, reduction, min_span, threads,
            **{'bundle.repeat_threshold': repeat_threshold,
               'bundle.min_branch_size': min_branch_size,
               'bundle.min_cov': min_cov,
               'index.occurrence_ceiling': occurrence_ceiling},
        ))
        _configure_logging(ctx, cfg, prefix)
        records = load_sequences(fasta)
        if include_file:
            records = select_records(records, read_name_list(include_file))
        reference = load_decomposition(precomputed) if precomputed else None
        run_ctx = RunContext.from_config(cfg, cmd=_command_line())
        result = run_decomposition(records, run_ctx, reference=reference)
        written = write_outputs(
            result, prefix,
            write_graphs=cfg['output']['write_graphs'] and not no_graphs and reference is None,
            write_artifact=cfg['output']['write_artifact'] and reference is None,
        )
    except (BundleWeaverError, FileNotFoundError) as e:
        _fail(ctx, str(e))

    if not ctx.obj.get('QUIET'):
        counts = result.counts()
        click.echo(f"✓ {counts['bundles']:,} bundles ({counts['repeat_bundles']:,} repeat) "
                   f"over {counts['contigs']} contigs")
        for path in written.values():
            click.echo(f"  {path}")


@main.command()
@click.option('--query', 'query_files', multiple=True, required=True, type=click.Path(exists=True),
              help='Query contig FASTA (repeatable)')
@click.option('--target', 'target_files', multiple=True, required=True, type=click.Path(exists=True),
              help='Target contig FASTA (repeatable)')
@click.option('--output', '-o', 'prefix', required=True, type=click.Path(),
              help='Output prefix')
@_shimmer_options
@click.option('--max-chain-span', type=int, default=None,
              help='Anchor ordinals an alignment block may skip')
@click.option('--skip-sv-seqs', is_flag=True, help='Do not write PREFIX.svcnd.seqs')
@click.pass_context
def svcall(ctx, query_files, target_files, prefix, config_file, kmer, window, reduction,
           min_span, threads, max_chain_span, skip_sv_seqs):
    """
    Classify structural-variant candidates between query and target contigs.

    Writes PREFIX.query.bed (QG/QD/QO), PREFIX.target.bed (TG/TD/TO),
    PREFIX.svcnd.bed (SVC, SVC_D, SVC_O), the candidate bases in
    PREFIX.svcnd.seqs, the alignment map PREFIX.alnmap and the contig map
    PREFIX.ctgmap.bed/.json, plus the decomposition outputs.

    Example:
        bundleweaver svcall --query sample.fa --target ref.fa -o out/sample_vs_ref
    """
    from .io.io_core_module import load_sequences
    from .utils.pipeline import RunContext, run_svcall, write_outputs, write_sv_outputs

    try:
        cfg = _load_run_config(config_file, _overrides(
            kmer, window, reduction, min_span, threads,
            **{'svcall.max_chain_span': max_chain_span},
        ))
        _configure_logging(ctx, cfg, prefix)
        queries = load_sequences(query_files)
        targets = load_sequences(target_files)
        run_ctx = RunContext.from_config(cfg, cmd=_command_line())
        result, classification = run_svcall(queries, targets, run_ctx)
        write_outputs(
            result, prefix,
            write_graphs=cfg['output']['write_graphs'],
            write_artifact=cfg['output']['write_artifact'],
        )
        write_sv_outputs(
            result, classification,
            [r.sequence for r in list(queries) + list(targets)],
            prefix,
            write_seqs=not skip_sv_seqs,
        )
    except (BundleWeaverError, FileNotFoundError) as e:
        _fail(ctx, str(e))

    if not ctx.obj.get('QUIET'):
        click.echo(
            f"✓ {len(classification.query_records)} query records, "
            f"{len(classification.target_records)} target records, "
            f"{len(classification.candidate_records)} SV candidates, "
            f"{len(classification.blocks)} alignment blocks"
        )


@main.command()
@click.argument('pdb', type=click.Path(exists=True))
@click.option('--output', '-o', 'prefix', required=True, type=click.Path(),
              help='Output prefix')
@click.option('--graphs/--no-graphs', default=False, help='Also rewrite the GFA graphs')
@click.pass_context
def reemit(ctx, pdb, prefix, graphs):
    """Reload a .pdb artifact and rewrite BED and summary outputs."""
    from .io_utils.bundle_export import (
        write_bed, write_contig_summary, write_mapg_gfa, write_pmapg_gfa,
    )
    from .io_utils.pdb_codec import load_decomposition
    from .utils.pipeline import output_paths, setup_logging

    setup_logging(level='DEBUG' if ctx.obj.get('VERBOSE') else
                  'WARNING' if ctx.obj.get('QUIET') else 'INFO')
    paths = output_paths(prefix)
    try:
        result = load_decomposition(pdb)
        paths['bed'].parent.mkdir(parents=True, exist_ok=True)
        write_bed(result, paths['bed'])
        write_contig_summary(result, paths['summary'])
        if graphs:
            write_mapg_gfa(result, paths['mapg'], paths['mapg_idx'])
            write_pmapg_gfa(result, paths['pmapg'], paths['pmapg_idx'])
    except BundleWeaverError as e:
        _fail(ctx, str(e))

    if not ctx.obj.get('QUIET'):
        click.echo(f"✓ Re-emitted {paths['bed']} and {paths['summary']}")


if __name__ == '__main__':
    sys.exit(main())
