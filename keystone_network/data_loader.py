# data_loader.py
import logging
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .exceptions import InsufficientDataError, MatrixFormatError, MissingInputError, SchemaError

logger = logging.getLogger(__name__)

NODE_METADATA_COLUMNS = ('node', 'group', 'threshold', 'degree', 'betweenness', 'closeness')


def _read_table(path: Path, **kwargs) -> pd.DataFrame:
    """Read a delimited table, reporting unreadable files as MatrixFormatError."""
    try:
        return pd.read_csv(path, **kwargs)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise MatrixFormatError(f"Cannot parse {path}: {e}") from e


class DataLoader:
    """Handles loading and alignment of correlation matrices, p-value matrices and node tables."""

    def load_correlation_matrix(self, file_path: str) -> pd.DataFrame:
        """
        Load a taxon-by-taxon correlation matrix (tab-separated, taxon IDs as header and first column).
        """
        return self._load_square_matrix(file_path, kind="correlation")

    def load_pvalue_matrix(self, file_path: str) -> pd.DataFrame:
        """
        Load a p-value matrix with the same layout as the correlation matrix.
        """
        return self._load_square_matrix(file_path, kind="p-value")

    def _load_square_matrix(self, file_path: str, kind: str) -> pd.DataFrame:
        path = Path(file_path)
        if not path.is_file():
            raise MissingInputError(f"{kind.capitalize()} matrix not found: {path}")
        logger.info(f"Loading {kind} matrix from: {path}")

        df = _read_table(path, sep='\t', index_col=0)
        df.index = df.index.astype(str)
        df.columns = df.columns.astype(str)

        duplicates = df.index.duplicated(keep=False)
        if duplicates.any():
            logger.warning(f"Found {duplicates.sum()} duplicate taxon IDs in {path.name}. Keeping first occurrence.")
            df = df[~df.index.duplicated(keep='first')]
        df = df.loc[:, ~df.columns.duplicated(keep='first')]

        missing = df.index.difference(df.columns)
        if len(missing) > 0:
            raise MatrixFormatError(
                f"{kind.capitalize()} matrix {path} is not square: row labels missing from header: "
                f"{list(missing[:5])}"
            )
        extra = df.columns.difference(df.index)
        if len(extra) > 0:
            logger.warning(f"Dropping {len(extra)} header-only columns from {path.name}.")

        df = df.loc[:, df.index].apply(pd.to_numeric, errors='coerce')
        logger.info(f"Loaded {kind} matrix: {df.shape[0]} x {df.shape[1]} taxa")
        return df

    def load_node_metadata(self, file_path: str) -> pd.DataFrame:
        """
        Load the node centrality properties table and validate its schema.

        Args:
            file_path (str): Tab-separated table with one row per (node, group, threshold).

        Returns:
            pd.DataFrame: Table with ``node`` and ``group`` as str and ``threshold`` as float.

        Raises:
            MissingInputError: If the file does not exist.
            SchemaError: If a required column is absent.
        """
        path = Path(file_path)
        if not path.is_file():
            raise MissingInputError(f"Node metadata file not found: {path}")
        logger.info(f"Loading node metadata from: {path}")

        df = _read_table(path, sep='\t')
        missing = [c for c in NODE_METADATA_COLUMNS if c not in df.columns]
        if missing:
            raise SchemaError(f"Node metadata {path} is missing required column(s): {', '.join(missing)}")

        df['node'] = df['node'].astype(str)
        df['group'] = df['group'].astype(str)
        df['threshold'] = df['threshold'].astype(float)

        duplicates = df.duplicated(subset=['node', 'group', 'threshold'], keep='first')
        if duplicates.any():
            logger.warning(f"Found {duplicates.sum()} duplicate (node, group, threshold) rows. Keeping first occurrence.")
            df = df[~duplicates]

        logger.info(f"Loaded node metadata: {len(df)} rows, {df['group'].nunique()} groups")
        return df.reset_index(drop=True)

    @staticmethod
    def metadata_nodes(metadata: pd.DataFrame, group: str, threshold: float) -> List[str]:
        """Return the node IDs recorded for one (group, threshold)."""
        mask = (metadata['group'] == str(group)) & np.isclose(metadata['threshold'], float(threshold))
        return metadata.loc[mask, 'node'].tolist()

    def load_taxonomy(self, file_path: str, id_column: str = 'ASV') -> pd.DataFrame:
        """
        Load a comma-separated taxonomy table keyed by taxon ID.

        An ``ASVID`` column is accepted as the identifier and renamed to ``id_column``.
        """
        path = Path(file_path)
        if not path.is_file():
            raise MissingInputError(f"Taxonomy file not found: {path}")
        logger.info(f"Loading taxonomy from: {path}")

        df = _read_table(path, encoding='utf-8')
        if id_column not in df.columns and 'ASVID' in df.columns:
            df = df.rename(columns={'ASVID': id_column})
            logger.info(f"Renamed ASVID column to {id_column}")
        if id_column not in df.columns:
            raise SchemaError(f"Taxonomy table {path} has no identifier column '{id_column}'")

        df[id_column] = df[id_column].astype(str)
        duplicates = df[id_column].duplicated(keep='first')
        if duplicates.any():
            logger.warning(f"Found {duplicates.sum()} duplicate taxonomy IDs. Keeping first occurrence.")
            df = df[~duplicates]
        return df.reset_index(drop=True)

    def align_matrices(self, matrices: Sequence[pd.DataFrame], required_ids: Optional[Iterable[str]] = None,
                       min_taxa: int = 10) -> Tuple[List[pd.DataFrame], pd.Index]:
        """
        Restrict matrices to their common taxa, using the same order on both axes of every matrix.

        Args:
            matrices (Sequence[pd.DataFrame]): Square taxon-indexed matrices. The first one
                defines the taxon order.
            required_ids (Optional[Iterable[str]]): Further IDs the taxon set is intersected with
                (e.g. the metadata nodes of one group and threshold).
            min_taxa (int): Minimum number of common taxa.

        Returns:
            Tuple[List[pd.DataFrame], pd.Index]: Aligned matrices and the common taxon set.

        Raises:
            InsufficientDataError: If fewer than ``min_taxa`` taxa are shared.
        """
        if not matrices:
            raise ValueError("At least one matrix is required for alignment.")

        common = matrices[0].index
        for other in matrices[1:]:
            common = common[common.isin(other.index) & common.isin(other.columns)]
        if required_ids is not None:
            required = pd.Index([str(i) for i in required_ids])
            common = common[common.isin(required)]

        if len(common) < min_taxa:
            raise InsufficientDataError(f"Too few common taxa: {len(common)} (minimum {min_taxa})")

        aligned = [m.loc[common, common] for m in matrices]
        logger.info(f"Aligned {len(matrices)} matrix(es) on {len(common)} common taxa.")
        return aligned, common
