#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
BundleWeaver v0.1.0

Tests for CLI command interface.

Author: BundleWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
from click.testing import CliRunner
from bundleweaver.cli import main

SMALL = ['-k', '21', '-w', '24', '-r', '2', '--min-span', '0']


@pytest.fixture
def fasta_files(temp_output_dir, random_sequence):
    """Two FASTA files sharing most of their sequence."""
    base = random_sequence(4000, seed=101)
    a = temp_output_dir / "a.fa"
    b = temp_output_dir / "b.fa"
    a.write_text(f">ref\n{base}\n")
    b.write_text(f">alt\n{base[:2000]}{random_sequence(1200, seed=102)}{base[2000:]}\n")
    return a, b


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self):
        """Test that --help runs without error."""
        runner = CliRunner()
        result = runner.invoke(main, ['--help'])

        assert result.exit_code == 0
        assert 'BundleWeaver' in result.output

    def test_cli_version(self):
        """Test that --version displays version."""
        runner = CliRunner()
        result = runner.invoke(main, ['--version'])

        assert result.exit_code == 0
        assert '0.1.0' in result.output

    def test_invalid_command(self):
        """Test that invalid command shows error."""
        runner = CliRunner()
        result = runner.invoke(main, ['invalid-command'])

        assert result.exit_code != 0


class TestConfigCommands:
    """Test config subcommands."""

    def test_config_init_and_validate(self, temp_output_dir):
        runner = CliRunner()
        path = temp_output_dir / "cfg.yaml"
        result = runner.invoke(main, ['config', 'init', '-o', str(path), '-t', 'dense'])
        assert result.exit_code == 0
        assert path.exists()

        result = runner.invoke(main, ['config', 'validate', str(path)])
        assert result.exit_code == 0
        assert 'k=31' in result.output

    def test_config_validate_reports_errors(self, temp_output_dir):
        path = temp_output_dir / "bad.yaml"
        path.write_text("shimmer:\n  k: 90\n")
        result = CliRunner().invoke(main, ['config', 'validate', str(path)])
        assert result.exit_code == 1

    def test_config_show_yaml(self, temp_output_dir):
        path = temp_output_dir / "cfg.yaml"
        path.write_text("bundle:\n  repeat_threshold: 2\n")
        result = CliRunner().invoke(main, ['config', 'show', str(path), '-f', 'yaml'])
        assert result.exit_code == 0
        assert 'repeat_threshold: 2' in result.output


class TestDecompCommand:
    """Test the decomposition command end to end."""

    def test_decomp_writes_outputs(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        prefix = temp_output_dir / "out" / "run"
        result = CliRunner().invoke(main, ['decomp', str(a), str(b), '-o', str(prefix)] + SMALL)

        assert result.exit_code == 0, result.output
        assert 'bundles' in result.output
        for suffix in ('.bed', '.ctg.summary.tsv', '.mapg.gfa', '.mapg.idx',
                       '.pmapg.gfa', '.pmapg.idx', '.pdb', '.params.yaml'):
            assert (temp_output_dir / "out" / f"run{suffix}").exists()
        assert (temp_output_dir / "out" / "run.bed").read_text().startswith("# cmd: bundleweaver")

    def test_decomp_no_graphs(self, fasta_files, temp_output_dir):
        a, _ = fasta_files
        prefix = temp_output_dir / "lean"
        result = CliRunner().invoke(main, ['-q', 'decomp', str(a), '-o', str(prefix), '--no-graphs'] + SMALL)
        assert result.exit_code == 0, result.output
        assert not (temp_output_dir / "lean.mapg.gfa").exists()

    def test_invalid_parameters_exit_one(self, fasta_files, temp_output_dir):
        a, _ = fasta_files
        result = CliRunner().invoke(main, ['decomp', str(a), '-o', str(temp_output_dir / "x"),
                                           '-k', '40', '-w', '24'])
        assert result.exit_code == 1

    def test_duplicate_contig_names_exit_one(self, fasta_files, temp_output_dir):
        a, _ = fasta_files
        result = CliRunner().invoke(main, ['decomp', str(a), str(a), '-o', str(temp_output_dir / "x")] + SMALL)
        assert result.exit_code == 1

    def test_missing_input(self):
        result = CliRunner().invoke(main, ['decomp', '-o', 'x'])
        assert result.exit_code != 0

    def test_reemit_identical_bed(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        runner = CliRunner()
        prefix = temp_output_dir / "run"
        assert runner.invoke(main, ['decomp', str(a), str(b), '-o', str(prefix)] + SMALL).exit_code == 0

        again = temp_output_dir / "again"
        result = runner.invoke(main, ['reemit', f"{prefix}.pdb", '-o', str(again)])
        assert result.exit_code == 0, result.output
        assert (temp_output_dir / "run.bed").read_bytes() == (temp_output_dir / "again.bed").read_bytes()
        assert ((temp_output_dir / "run.ctg.summary.tsv").read_bytes()
                == (temp_output_dir / "again.ctg.summary.tsv").read_bytes())

    def test_reemit_rejects_foreign_file(self, fasta_files, temp_output_dir):
        a, _ = fasta_files
        result = CliRunner().invoke(main, ['reemit', str(a), '-o', str(temp_output_dir / "x")])
        assert result.exit_code == 1

    def test_include_selects_contigs(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        names = temp_output_dir / "names.txt"
        names.write_text("# keep the reference only\nref\n")
        prefix = temp_output_dir / "inc"
        result = CliRunner().invoke(main, ['decomp', str(a), str(b), '-o', str(prefix),
                                           '--include', str(names)] + SMALL)
        assert result.exit_code == 0, result.output
        rows = (temp_output_dir / "inc.bed").read_text().splitlines()[1:]
        assert rows
        assert all(row.startswith("ref\t") for row in rows)

    def test_include_unknown_name_exit_one(self, fasta_files, temp_output_dir):
        a, _ = fasta_files
        names = temp_output_dir / "names.txt"
        names.write_text("nope\n")
        result = CliRunner().invoke(main, ['decomp', str(a), '-o', str(temp_output_dir / "x"),
                                           '--include', str(names)] + SMALL)
        assert result.exit_code == 1

    def test_min_branch_size_option(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        prefix = temp_output_dir / "nbr"
        result = CliRunner().invoke(main, ['decomp', str(a), str(b), '-o', str(prefix),
                                           '--min-branch-size', '0'] + SMALL)
        assert result.exit_code == 0, result.output
        assert 'min_branch_size: 0' in (temp_output_dir / "nbr.params.yaml").read_text()

    def test_precomputed_bundles(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        runner = CliRunner()
        prefix = temp_output_dir / "base"
        assert runner.invoke(main, ['decomp', str(a), str(b), '-o', str(prefix)] + SMALL).exit_code == 0

        reuse = temp_output_dir / "reuse"
        result = runner.invoke(main, ['decomp', str(b), '-o', str(reuse),
                                      '--precomputed-bundles', f"{prefix}.pdb"] + SMALL)
        assert result.exit_code == 0, result.output
        assert (temp_output_dir / "reuse.bed").exists()
        assert (temp_output_dir / "reuse.ctg.summary.tsv").exists()
        assert not (temp_output_dir / "reuse.pdb").exists()
        assert not (temp_output_dir / "reuse.mapg.gfa").exists()

        base_rows = [r for r in (temp_output_dir / "base.bed").read_text().splitlines()[1:]
                     if r.startswith("alt\t")]
        reuse_rows = (temp_output_dir / "reuse.bed").read_text().splitlines()[1:]
        assert [r.split("\t")[:3] for r in reuse_rows] == [r.split("\t")[:3] for r in base_rows]


class TestSVCallCommand:
    """Test the SV classification command."""

    def test_svcall_writes_record_files(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        prefix = temp_output_dir / "sv"
        result = CliRunner().invoke(main, ['svcall', '--query', str(b), '--target', str(a),
                                           '-o', str(prefix)] + SMALL)
        assert result.exit_code == 0, result.output

        query_lines = (temp_output_dir / "sv.query.bed").read_text().splitlines()
        assert query_lines[0].startswith("# cmd:")
        gaps = [l for l in query_lines[1:] if l.split("\t")[3].startswith("QG:")]
        assert len(gaps) == 1
        assert gaps[0].startswith("alt\t")
        assert (temp_output_dir / "sv.target.bed").exists()
        assert (temp_output_dir / "sv.svcnd.bed").exists()
        for suffix in ('.alnmap', '.ctgmap.bed', '.ctgmap.json', '.svcnd.seqs'):
            assert (temp_output_dir / f"sv{suffix}").exists()
        assert 'alignment blocks' in result.output

    def test_skip_sv_seqs(self, fasta_files, temp_output_dir):
        a, b = fasta_files
        prefix = temp_output_dir / "lean"
        result = CliRunner().invoke(main, ['svcall', '--query', str(b), '--target', str(a),
                                           '-o', str(prefix), '--skip-sv-seqs'] + SMALL)
        assert result.exit_code == 0, result.output
        assert (temp_output_dir / "lean.alnmap").exists()
        assert not (temp_output_dir / "lean.svcnd.seqs").exists()
