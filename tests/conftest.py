import numpy as np
import pandas as pd
import pytest

TAXA = [f"ASV{i:02d}" for i in range(1, 13)]


def synthetic_correlation(taxa=TAXA):
    """
    Deterministic correlation matrix.

    |r| is 0.5, 0.35 or 0.25 depending on (i + j) % 3, so the networks at 0.4,
    0.3 and 0.2 are nested and every taxon keeps at least one neighbour.
    At 0.2 the network is complete.
    """
    n = len(taxa)
    values = np.eye(n)
    strengths = [0.5, 0.35, 0.25]
    for i in range(n):
        for j in range(i + 1, n):
            r = strengths[(i + j) % 3]
            if (i * j) % 2:
                r = -r
            values[i, j] = values[j, i] = r
    return pd.DataFrame(values, index=taxa, columns=taxa)


def synthetic_pvalues(taxa=TAXA):
    n = len(taxa)
    values = np.zeros((n, n))
    for i in range(n):
        for j in range(n):
            if i != j:
                values[i, j] = 0.01 if (i + j) % 2 == 0 else 0.2
    return pd.DataFrame(values, index=taxa, columns=taxa)


def small_matrix(pairs, taxa=('A', 'B', 'C', 'D'), default=0.1):
    """Symmetric matrix over ``taxa`` with the given pair values and ``default`` elsewhere."""
    taxa = list(taxa)
    df = pd.DataFrame(default, index=taxa, columns=taxa, dtype=float)
    for (a, b), value in pairs.items():
        df.loc[a, b] = value
        df.loc[b, a] = value
    for t in taxa:
        df.loc[t, t] = 1.0
    return df


def write_matrix(df, path):
    df.to_csv(path, sep='\t')
    return str(path)


@pytest.fixture
def correlation():
    return synthetic_correlation()


@pytest.fixture
def pvalues():
    return synthetic_pvalues()


@pytest.fixture
def worked_example():
    """corr(A,B)=0.5, corr(A,C)=0.2, every other pair 0.1."""
    return small_matrix({('A', 'B'): 0.5, ('A', 'C'): 0.2})


@pytest.fixture
def taxonomy_file(tmp_path):
    path = tmp_path / "taxonomy.csv"
    pd.DataFrame({
        'ASVID': TAXA,
        'Phylum': ['Firmicutes'] * 6 + ['Bacteroidota'] * 6,
        'Genus': [f"Genus{i}" for i in range(len(TAXA))],
    }).to_csv(path, index=False)
    return str(path)


@pytest.fixture
def group_files(tmp_path):
    """Correlation and p-value matrices of one group written to disk."""
    cor = write_matrix(synthetic_correlation(), tmp_path / "cor_G1.txt")
    pval = write_matrix(synthetic_pvalues(), tmp_path / "pval_G1.txt")
    return cor, pval
