import pandas as pd
import pytest

from conftest import TAXA, small_matrix, synthetic_correlation
from keystone_network.config import KeystoneConfig
from keystone_network.exceptions import InsufficientDataError
from keystone_network.statistical_validation import (EDGE_COLUMNS, SUMMARY_COLUMNS, SignificanceFilter,
                                                     compare_correlation_methods, upper_triangle_pairs)


@pytest.fixture
def significance():
    return SignificanceFilter(KeystoneConfig())


def _worked_pvalues():
    return small_matrix({('A', 'B'): 0.01, ('A', 'C'): 0.01}, default=0.5)


def test_worked_example_flags(significance, worked_example):
    edges = significance.pairwise_table(worked_example, _worked_pvalues()).set_index(['ASV1', 'ASV2'])
    assert bool(edges.loc[('A', 'B'), 'Significant'])
    # p passes but |r| = 0.2 fails the magnitude condition
    assert not bool(edges.loc[('A', 'C'), 'Significant'])
    assert edges['Significant'].sum() == 1


def test_upper_triangle_pairs(worked_example):
    pairs = upper_triangle_pairs(worked_example)
    assert len(pairs) == 6
    assert pairs[['ASV1', 'ASV2']].values.tolist()[:3] == [['A', 'B'], ['A', 'C'], ['A', 'D']]
    assert pairs['value'].tolist()[:2] == pytest.approx([0.5, 0.2])


def test_flag_is_exact_for_every_pair(significance, correlation, pvalues):
    edges = significance.pairwise_table(correlation, pvalues)
    assert list(edges.columns) == EDGE_COLUMNS
    assert len(edges) == len(TAXA) * (len(TAXA) - 1) // 2
    expected = (edges['P_value'] < 0.05) & (edges['Correlation'].abs() > 0.3)
    assert edges['Significant'].tolist() == expected.tolist()


def test_misaligned_matrices_rejected(significance, worked_example):
    reordered = worked_example.loc[['B', 'A', 'C', 'D'], ['B', 'A', 'C', 'D']]
    with pytest.raises(ValueError):
        significance.pairwise_table(worked_example, reordered)


def test_summary_arithmetic(significance, worked_example):
    edges = significance.pairwise_table(worked_example, _worked_pvalues())
    summary = significance.summarize('G1', edges, 4)
    assert list(summary) == SUMMARY_COLUMNS
    assert summary['Total_Edges'] == 6
    assert summary['Significant_Edges'] == 1
    assert summary['Positive_Correlations'] == 1
    assert summary['Negative_Correlations'] == 0
    assert summary['Significance_Ratio'] == 16.67
    assert summary['Mean_Correlation'] == 0.1833
    assert summary['Mean_Abs_Correlation'] == 0.1833


def test_filter_group_writes_tables(significance, correlation, pvalues, tmp_path):
    result = significance.filter_group('G1', correlation, pvalues, output_dir=str(tmp_path))
    assert result.summary['Total_ASVs'] == 12
    assert result.significant_edges['Significant'].all()

    full = pd.read_csv(tmp_path / "sparcc_network_G1.txt", sep='\t')
    significant = pd.read_csv(tmp_path / "sparcc_significant_network_G1.txt", sep='\t')
    assert len(full) == 66
    assert len(significant) == result.summary['Significant_Edges']


def test_filter_group_needs_common_taxa(significance, worked_example):
    with pytest.raises(InsufficientDataError):
        significance.filter_group('G1', worked_example, _worked_pvalues())


def test_compare_identical_methods(correlation):
    row = compare_correlation_methods('G1', correlation, correlation.copy())
    assert row['Common_ASVs'] == 12
    assert row['Number_of_edges'] == 66
    assert row['SparCC_n_strong'] == row['Spearman_n_strong'] == row['Common_Strong_Edges']
    assert row['Jaccard_Index'] == 1.0
    assert row['Spearman_rho'] == pytest.approx(1.0)


def test_compare_sign_flipped_methods(correlation):
    row = compare_correlation_methods('G1', correlation, -correlation)
    # strong edges depend on |r| only
    assert row['Jaccard_Index'] == 1.0
    assert row['Spearman_rho'] == pytest.approx(-1.0)
    assert row['SparCC_mean'] == pytest.approx(-row['Spearman_mean'])


def test_compare_without_strong_edges():
    taxa = [f"T{i:02d}" for i in range(12)]
    flat = small_matrix({}, taxa=taxa, default=0.1)
    weak = small_matrix({('T00', 'T01'): 0.2}, taxa=taxa, default=0.05)
    row = compare_correlation_methods('G1', flat, weak)
    assert row['Common_Strong_Edges'] == 0
    assert row['Jaccard_Index'] == 0.0
    assert row['SparCC_strong_percent'] == 0.0


def test_compare_uses_common_taxa():
    primary = synthetic_correlation()
    alternative = synthetic_correlation(TAXA + ['ASV99'])
    row = compare_correlation_methods('G1', primary, alternative)
    assert row['Common_ASVs'] == 12


def test_compare_without_finite_pairs(correlation):
    alternative = correlation.copy()
    alternative.iloc[:, :] = float('nan')
    with pytest.raises(InsufficientDataError):
        compare_correlation_methods('G1', correlation, alternative)
