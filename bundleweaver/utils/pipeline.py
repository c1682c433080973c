"""
BundleWeaver Decomposition Pipeline.

Coordinates the full decomposition of a contig set:
- Sampling: shimmer anchors per contig (parallel)
- Indexing: sharded anchor index with occurrence ceiling
- Graph: MAP graph over shared anchors
- Bundling: principal bundles and per-contig bundle paths
- Projection: contig segments, repeat classification, contig summaries
- Output: BED, summary TSV, GFA graphs with offset indexes, binary
  artifact and parameter manifest

Stages read and write the shared structures only at barriers: the index is
frozen before graph construction and the graph is frozen before bundling.
All run parameters travel in one immutable RunContext.
"""

from pathlib import Path
from typing import Optional, Dict, Any, List, Sequence, Tuple, Union
import logging
import time
from dataclasses import dataclass, field, replace

from ..bundle_core.shimmer_module import ShimmerParams, ShimmerSampler
from ..bundle_core.anchor_index_module import AnchorIndex, build_anchor_index
from ..bundle_core.mapg_engine_module import MapGraph, build_map_graph
from ..bundle_core.pbundle_module import BundleExtractor, BundleTable
from ..bundle_core.projection_module import (
    ContigSegment,
    ContigSummary,
    CoordinateProjector,
    repeat_policy,
)
from ..bundle_core.svscribe_module import ClassificationResult, SVScribe
from ..io.io_core_module import SequenceRecord
from ..exceptions import InputError

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# ============================================================================
# Data Structures
# ============================================================================

@dataclass(frozen=True)
class RunContext:
    """Immutable run parameters shared by every stage."""
    params: ShimmerParams
    index_cfg: Dict[str, Any] = field(default_factory=dict)
    bundle_cfg: Dict[str, Any] = field(default_factory=dict)
    sv_cfg: Dict[str, Any] = field(default_factory=dict)
    threads: int = 1
    cmd: str = ""

    @classmethod
    def from_config(cls, config: Dict[str, Any], cmd: str = "") -> 'RunContext':
        return cls(
            params=ShimmerParams.from_dict(config['shimmer']),
            index_cfg=dict(config.get('index', {})),
            bundle_cfg=dict(config.get('bundle', {})),
            sv_cfg=dict(config.get('svcall', {})),
            threads=int(config.get('runtime', {}).get('threads', 1)),
            cmd=cmd,
        )


@dataclass
class Decomposition:
    """
    Result of one decomposition run.

    ``index`` and ``graph`` are rebuilt when an artifact is reloaded, so a
    reloaded decomposition can re-emit every output.
    """
    contig_names: List[str]
    contig_lengths: List[int]
    params: ShimmerParams
    table: BundleTable
    segments: Dict[int, List[ContigSegment]]
    summaries: List[ContigSummary]
    repeat_policy: Dict[str, Any]
    index_cfg: Dict[str, Any] = field(default_factory=dict)
    bundle_cfg: Dict[str, Any] = field(default_factory=dict)
    cmd: str = ""
    index: Optional[AnchorIndex] = None
    graph: Optional[MapGraph] = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def contig_count(self) -> int:
        return len(self.contig_names)

    def contig_id(self, name: str) -> int:
        try:
            return self.contig_names.index(name)
        except ValueError:
            raise InputError(f"Unknown contig: {name}") from None

    def iter_segments(self):
        """All segments in contig input order."""
        for contig_id in range(self.contig_count):
            for seg in self.segments.get(contig_id, []):
                yield seg

    def counts(self) -> Dict[str, int]:
        stats = {
            'contigs': self.contig_count,
            'bundles': len(self.table.bundles),
            'repeat_bundles': sum(1 for b in self.table.bundles if b.repeat),
            'path_entries': sum(len(v) for v in self.table.paths.values()),
            'segments': sum(len(v) for v in self.segments.values()),
        }
        if self.index is not None:
            index_stats = self.index.stats()
            stats['anchors'] = index_stats['anchors']
            stats['excluded_anchors'] = index_stats['excluded']
        if self.graph is not None:
            stats['graph_nodes'] = self.graph.node_count
            stats['graph_edges'] = self.graph.edge_count
        return stats


# ============================================================================
# Pipeline
# ============================================================================

class DecompositionPipeline:
    """
    Runs the decomposition stages in order on an in-memory contig set.

    Args:
        ctx: Run context
        reference: Earlier decomposition whose bundles are reused instead
            of extracting new ones
    """

    steps = ['sample', 'index', 'graph', 'bundle', 'project']

    def __init__(self, ctx: RunContext, reference: Optional[Decomposition] = None):
        self.ctx = ctx
        self.reference = reference
        self.logger = logging.getLogger(f"{__name__}.DecompositionPipeline")
        self.state: Dict[str, Any] = {}

    def run(self, records: Sequence[SequenceRecord]) -> Decomposition:
        if not records:
            raise InputError("No contigs to decompose")

        self.logger.info("=" * 60)
        self.logger.info(f"Starting BundleWeaver decomposition of {len(records)} contigs")
        self.logger.info(f"Shimmer parameters: {self.ctx.params.to_dict()}")
        self.logger.info("=" * 60)

        self.state = {
            'records': list(records),
            'names': [r.name for r in records],
            'lengths': [r.length for r in records],
            'timings': {},
        }

        for i, step in enumerate(self.steps):
            self.logger.info(f"STEP {i + 1}/{len(self.steps)}: {step.upper()}")
            start = time.time()
            try:
                getattr(self, f"_step_{step}")()
            except Exception as e:
                self.logger.error(f"Step {step} failed: {e}")
                raise
            self.state['timings'][step] = time.time() - start

        s = self.state
        decomp = Decomposition(
            contig_names=s['names'],
            contig_lengths=s['lengths'],
            params=self.ctx.params,
            table=s['table'],
            segments=s['projection'].segments,
            summaries=s['projection'].summaries,
            repeat_policy=repeat_policy(self.ctx.bundle_cfg.get('repeat_threshold', 1)),
            index_cfg=dict(self.ctx.index_cfg),
            bundle_cfg=dict(self.ctx.bundle_cfg),
            cmd=self.ctx.cmd,
            index=s['index'],
            graph=s['graph'],
            timings=s['timings'],
        )
        self.logger.info(f"Decomposition complete: {decomp.counts()}")
        return decomp

    def _step_sample(self):
        sampler = ShimmerSampler(self.ctx.params, threads=self.ctx.threads)
        self.state['series'] = sampler.sample_all([r.sequence for r in self.state['records']])

    def _step_index(self):
        self.state['index'] = build_anchor_index(
            self.state['series'],
            n_shards=self.ctx.index_cfg.get('n_shards', 16),
            occurrence_ceiling=self.ctx.index_cfg.get('occurrence_ceiling', 1024),
            threads=self.ctx.threads,
        )

    def _step_graph(self):
        seed = None
        if self.reference is not None:
            seed = [node.anchor_hash for node in self.reference.graph.nodes]
        self.state['graph'] = build_map_graph(self.state['index'], threads=self.ctx.threads, seed_hashes=seed)

    def _step_bundle(self):
        cfg = self.ctx.bundle_cfg
        extractor = BundleExtractor(
            branch_dominance=cfg.get('branch_dominance', 0.5),
            min_branch_size=cfg.get('min_branch_size', 0),
            min_cov=cfg.get('min_cov', 0),
        )
        if self.reference is not None:
            self.state['table'] = extractor.transfer(self.state['graph'], self.reference.table)
        else:
            self.state['table'] = extractor.extract(self.state['graph'])

    def _step_project(self):
        projector = CoordinateProjector(
            k=self.ctx.params.k,
            repeat_threshold=self.ctx.bundle_cfg.get('repeat_threshold', 1),
            min_segment_length=self.ctx.bundle_cfg.get('min_segment_length', 0),
            merge_distance=self.ctx.bundle_cfg.get('merge_distance', 0),
        )
        self.state['projection'] = projector.project(
            self.state['graph'], self.state['table'], self.state['names'], self.state['lengths']
        )


def run_decomposition(
    records: Sequence[SequenceRecord],
    ctx: RunContext,
    reference: Optional[Decomposition] = None,
) -> Decomposition:
    """
    Decompose a contig set with the given run context.

    With a ``reference`` (a reloaded artifact) the contigs are projected
    onto its bundles. Its shimmer, index and bundle settings replace the
    ones in ``ctx`` so anchors line up with the stored graph.
    """
    if reference is not None:
        if reference.graph is None:
            raise InputError("Precomputed bundles need the stored anchor graph")
        if ctx.params != reference.params:
            logger.warning(
                f"Using shimmer parameters {reference.params.to_dict()} from the precomputed bundles "
                f"instead of {ctx.params.to_dict()}"
            )
        ctx = replace(
            ctx,
            params=reference.params,
            index_cfg=dict(reference.index_cfg),
            bundle_cfg=dict(reference.bundle_cfg),
        )
    return DecompositionPipeline(ctx, reference=reference).run(records)


def run_svcall(
    query_records: Sequence[SequenceRecord],
    target_records: Sequence[SequenceRecord],
    ctx: RunContext,
) -> Tuple[Decomposition, ClassificationResult]:
    """
    Decompose queries and targets together, then classify every query
    against every target.
    """
    names = [r.name for r in query_records] + [r.name for r in target_records]
    if len(set(names)) != len(names):
        raise InputError("Query and target contig names must be distinct")

    records = list(query_records) + list(target_records)
    decomp = run_decomposition(records, ctx)

    scribe = SVScribe(
        graph=decomp.graph,
        table=decomp.table,
        sequences=[r.sequence for r in records],
        contig_names=decomp.contig_names,
        k=ctx.params.k,
        config=ctx.sv_cfg,
        threads=ctx.threads,
    )
    n_query = len(query_records)
    result = scribe.classify_all(list(range(n_query)), list(range(n_query, len(records))))
    return decomp, result


# ============================================================================
# Output
# ============================================================================

def output_paths(prefix: Union[str, Path]) -> Dict[str, Path]:
    """Every file a decomposition run may write, keyed by kind."""
    prefix = str(prefix)
    return {
        'bed': Path(f"{prefix}.bed"),
        'summary': Path(f"{prefix}.ctg.summary.tsv"),
        'mapg': Path(f"{prefix}.mapg.gfa"),
        'mapg_idx': Path(f"{prefix}.mapg.idx"),
        'pmapg': Path(f"{prefix}.pmapg.gfa"),
        'pmapg_idx': Path(f"{prefix}.pmapg.idx"),
        'pdb': Path(f"{prefix}.pdb"),
        'params': Path(f"{prefix}.params.yaml"),
    }


def write_outputs(
    decomp: Decomposition,
    prefix: Union[str, Path],
    write_graphs: bool = True,
    write_artifact: bool = True,
) -> Dict[str, Path]:
    """Write the decomposition outputs next to ``prefix``; returns written paths."""
    from ..io_utils.bundle_export import (
        write_bed,
        write_contig_summary,
        write_mapg_gfa,
        write_pmapg_gfa,
        write_run_manifest,
    )
    from ..io_utils.pdb_codec import save_decomposition

    paths = output_paths(prefix)
    paths['bed'].parent.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}

    write_bed(decomp, paths['bed'])
    written['bed'] = paths['bed']
    write_contig_summary(decomp, paths['summary'])
    written['summary'] = paths['summary']

    if write_graphs and decomp.graph is not None:
        write_mapg_gfa(decomp, paths['mapg'], paths['mapg_idx'])
        write_pmapg_gfa(decomp, paths['pmapg'], paths['pmapg_idx'])
        for key in ('mapg', 'mapg_idx', 'pmapg', 'pmapg_idx'):
            written[key] = paths[key]

    if write_artifact:
        save_decomposition(decomp, paths['pdb'])
        written['pdb'] = paths['pdb']

    write_run_manifest(decomp, paths['params'])
    written['params'] = paths['params']

    logger.info(f"Wrote {len(written)} output files with prefix {prefix}")
    return written


def sv_output_paths(prefix: Union[str, Path]) -> Dict[str, Path]:
    """Every file an SV comparison writes besides the decomposition outputs."""
    prefix = str(prefix)
    return {
        'query_bed': Path(f"{prefix}.query.bed"),
        'target_bed': Path(f"{prefix}.target.bed"),
        'svcnd_bed': Path(f"{prefix}.svcnd.bed"),
        'svcnd_seqs': Path(f"{prefix}.svcnd.seqs"),
        'alnmap': Path(f"{prefix}.alnmap"),
        'ctgmap_bed': Path(f"{prefix}.ctgmap.bed"),
        'ctgmap_json': Path(f"{prefix}.ctgmap.json"),
    }


def write_sv_outputs(
    decomp: Decomposition,
    result: ClassificationResult,
    sequences: Sequence[str],
    prefix: Union[str, Path],
    write_seqs: bool = True,
) -> Dict[str, Path]:
    """Write the SV BED files, alignment map and contig map; returns written paths."""
    from ..io_utils.bundle_export import (
        write_alnmap,
        write_ctgmap_bed,
        write_ctgmap_json,
        write_sv_bed,
        write_sv_candidate_seqs,
    )

    paths = sv_output_paths(prefix)
    paths['query_bed'].parent.mkdir(parents=True, exist_ok=True)
    names = decomp.contig_names
    lengths = decomp.contig_lengths
    k = decomp.params.k

    write_sv_bed(result.query_records, paths['query_bed'], cmd=decomp.cmd)
    write_sv_bed(result.target_records, paths['target_bed'], cmd=decomp.cmd)
    write_sv_bed(result.candidate_records, paths['svcnd_bed'], cmd=decomp.cmd)
    write_alnmap(result, names, lengths, k, paths['alnmap'])
    write_ctgmap_bed(result, names, lengths, paths['ctgmap_bed'])
    write_ctgmap_json(result, names, lengths, paths['ctgmap_json'])
    if write_seqs:
        write_sv_candidate_seqs(result, names, sequences, k, paths['svcnd_seqs'])
    else:
        del paths['svcnd_seqs']
    return paths


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[Union[str, Path]] = None,
    output_dir: Optional[Path] = None,
):
    """Configure root logging for a command-line run."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        if output_dir is not None and not log_path.is_absolute():
            log_path = Path(output_dir) / log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
