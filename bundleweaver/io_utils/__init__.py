"""
BundleWeaver v0.1.0

Output module for BundleWeaver.

1. bundle_export.py - BED, contig summary TSV, SV BED, alignment and
   contig maps, GFA graphs with offset indexes, run manifest
2. pdb_codec.py - Binary decomposition artifact save/load
"""

from .bundle_export import (
    write_bed,
    write_contig_summary,
    write_sv_bed,
    write_alnmap,
    write_ctgmap_bed,
    write_ctgmap_json,
    write_sv_candidate_seqs,
    ctgmap_records,
    write_mapg_gfa,
    write_pmapg_gfa,
    write_gfa_index,
    write_run_manifest,
    run_manifest,
    GFAOffsetIndex,
    GFASegment,
    GFALink,
    GFAPath,
)

from .pdb_codec import (
    save_decomposition,
    load_decomposition,
    PDB_MAGIC,
    PDB_VERSION,
)

__all__ = [
    "write_bed",
    "write_contig_summary",
    "write_sv_bed",
    "write_alnmap",
    "write_ctgmap_bed",
    "write_ctgmap_json",
    "write_sv_candidate_seqs",
    "ctgmap_records",
    "write_mapg_gfa",
    "write_pmapg_gfa",
    "write_gfa_index",
    "write_run_manifest",
    "run_manifest",
    "GFAOffsetIndex",
    "GFASegment",
    "GFALink",
    "GFAPath",
    "save_decomposition",
    "load_decomposition",
    "PDB_MAGIC",
    "PDB_VERSION",
]
