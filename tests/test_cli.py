import argparse
import json
import logging

import pandas as pd
import pytest
import yaml

from keystone_network import __version__
from keystone_network.cli import main, validate_file_path
from keystone_network.exceptions import SchemaError
from keystone_network.utils import (create_config_from_args, load_config_file, load_group_manifest,
                                    parse_group_spec, parse_thresholds, setup_logging)


@pytest.fixture(autouse=True)
def detach_file_handlers():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()


def test_parse_group_spec():
    group = parse_group_spec("Healthy=cor.txt,pval.txt")
    assert group.group_id == 'Healthy'
    assert group.correlation_matrix_path == 'cor.txt'
    assert group.pvalue_matrix_path == 'pval.txt'
    assert parse_group_spec("G=cor.txt").pvalue_matrix_path is None


@pytest.mark.parametrize("spec", ["cor.txt", "=cor.txt", "G=", "G=a,b,c"])
def test_parse_group_spec_invalid(spec):
    with pytest.raises(argparse.ArgumentTypeError):
        parse_group_spec(spec)


def test_parse_thresholds():
    assert parse_thresholds("0.2,0.3, 0.4") == [0.2, 0.3, 0.4]
    with pytest.raises(argparse.ArgumentTypeError):
        parse_thresholds("0.2,high")


def test_create_config_from_args():
    args = argparse.Namespace(thresholds=[0.25], top_fraction=0.2, max_workers=None)
    config = create_config_from_args(args)
    assert config.thresholds == [0.25]
    assert config.top_fraction == 0.2
    assert config.max_workers == 1


def test_load_config_file_sections(tmp_path, caplog):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({
        'analysis': {'thresholds': [0.3, 0.5], 'top_fraction': 0.2, 'bogus': 1},
        'significance': {'significance_level': 0.01},
        'output': {'formats': ['json'], 'write_graphml': False},
        'processing': {'max_workers': 3},
    }))
    with caplog.at_level(logging.WARNING):
        config = load_config_file(str(path))
    assert config.thresholds == [0.3, 0.5]
    assert config.top_fraction == 0.2
    assert config.significance_level == 0.01
    assert config.output_formats == ['json']
    assert config.write_graphml is False
    assert config.max_workers == 3
    assert "analysis.bogus" in caplog.text


def test_load_config_file_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'analysis': {'min_common_taxa': 5}}))
    assert load_config_file(str(path)).min_common_taxa == 5


def test_load_group_manifest_resolves_paths(tmp_path):
    path = tmp_path / "manifest.yml"
    path.write_text(yaml.safe_dump({
        'taxonomy': 'taxonomy.csv',
        'node_metadata': '/data/node_centrality_properties.txt',
        'groups': [
            {'group_id': 'Healthy', 'correlation_matrix': 'cor_Healthy.txt', 'pvalue_matrix': 'pval_Healthy.txt'},
            {'group_id': 'Disease', 'correlation_matrix': 'cor_Disease.txt'},
        ],
        'analysis': {'thresholds': [0.3]},
    }))
    manifest = load_group_manifest(str(path))
    healthy, disease = manifest['groups']
    assert healthy.correlation_matrix_path == str(tmp_path / 'cor_Healthy.txt')
    assert healthy.pvalue_matrix_path == str(tmp_path / 'pval_Healthy.txt')
    assert disease.pvalue_matrix_path is None
    assert manifest['taxonomy'] == str(tmp_path / 'taxonomy.csv')
    assert manifest['node_metadata'] == '/data/node_centrality_properties.txt'
    assert manifest['config'].thresholds == [0.3]


def test_load_group_manifest_missing_field(tmp_path):
    path = tmp_path / "manifest.yml"
    path.write_text(yaml.safe_dump({'groups': [{'group_id': 'Healthy'}]}))
    with pytest.raises(SchemaError, match="correlation_matrix"):
        load_group_manifest(str(path))


def test_setup_logging_creates_file(tmp_path):
    log_file = setup_logging(str(tmp_path))
    logging.getLogger("keystone_network.test").info("hello")
    assert log_file.name.startswith("keystone_network_")
    assert "hello" in log_file.read_text()


def test_validate_file_path(tmp_path):
    path = tmp_path / "cor.csv"
    path.write_text("x")
    with pytest.raises(SystemExit):
        validate_file_path(str(path), 'matrix')
    with pytest.raises(SystemExit):
        validate_file_path(str(tmp_path / "absent.txt"), 'matrix')
    assert validate_file_path(str(path), 'taxonomy') == path


def test_main_with_groups(group_files, tmp_path):
    cor, pval = group_files
    out = tmp_path / "results"
    main(["--group", f"G1={cor},{pval}", "--output-dir", str(out), "--thresholds", "0.3,0.4"])
    assert (out / 'network' / 'keystone_taxa_sensitivity_analysis.txt').exists()
    assert (out / 'significance' / 'sparcc_network_summary.txt').exists()
    assert len(list(out.glob('keystone_network_*.log'))) == 1


def test_main_with_manifest(group_files, tmp_path):
    cor, pval = group_files
    manifest = tmp_path / "manifest.yml"
    manifest.write_text(yaml.safe_dump({
        'groups': [{'group_id': 'G1', 'correlation_matrix': 'cor_G1.txt', 'pvalue_matrix': 'pval_G1.txt'}],
        'output': {'formats': ['text']},
    }))
    out = tmp_path / "results"
    main(["--config", str(manifest), "--output-dir", str(out), "--skip-gephi"])
    assert (out / 'run_report.txt').exists()
    assert not list(out.glob('keystone_results_*.json'))
    assert not (out / 'gephi').exists()


def test_main_missing_matrix_skips_only_that_group(group_files, tmp_path):
    cor, pval = group_files
    out = tmp_path / "results"
    main(["--group", f"G1={cor},{pval}", "--group", f"G2={tmp_path / 'absent.txt'}",
          "--output-dir", str(out)])

    keystones = pd.read_csv(out / 'network' / 'keystone_taxa_sensitivity_analysis.txt', sep='\t')
    assert set(keystones['group']) == {'G1'}
    assert (out / 'gephi' / 'G1_nodes.csv').exists()
    report = (out / 'run_report.txt').read_text()
    assert "G2" in report
    assert "MissingInputError" in report


def test_main_requires_groups(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["--output-dir", str(tmp_path)])
    assert exc.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out
