"""
Output generation module for keystone_network.
Writes the tables produced by the pipeline and exports networks for graph
visualization tools:
1. Gephi node / edge CSV pairs (with centrality attributes and taxonomy)
2. GraphML copies of the exported networks
3. Tab-separated result tables
4. JSON results and a plain-text run report
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import networkx as nx
import numpy as np
import pandas as pd

from .config import KeystoneConfig
from .network_builder import CooccurrenceNetwork

logger = logging.getLogger(__name__)

GEPHI_NODE_COLUMNS = {
    'node': 'Id',
    'degree': 'Degree',
    'betweenness': 'Betweenness',
    'closeness': 'Closeness',
    'eigen_centrality': 'Eigenvector',
    'transitivity': 'Transitivity',
}


def gephi_node_table(centralities: pd.DataFrame, group: str, taxonomy: Optional[pd.DataFrame] = None,
                     id_column: str = 'ASV') -> pd.DataFrame:
    """
    Node table for Gephi: Id, Label, centralities, Group and the joined taxonomy fields.
    """
    nodes = centralities[list(GEPHI_NODE_COLUMNS)].rename(columns=GEPHI_NODE_COLUMNS)
    nodes.insert(1, 'Label', nodes['Id'])
    nodes['Group'] = group

    if taxonomy is not None and not taxonomy.empty:
        taxa = taxonomy.rename(columns={id_column: 'Id'})
        clashing = [c for c in taxa.columns if c != 'Id' and c in nodes.columns]
        if clashing:
            taxa = taxa.rename(columns={c: f"taxonomy_{c}" for c in clashing})
        nodes = nodes.merge(taxa, on='Id', how='left')
    return nodes.reset_index(drop=True)


def gephi_edge_table(network: CooccurrenceNetwork) -> pd.DataFrame:
    """Edge table for Gephi: Source, Target, Type, Weight, Correlation."""
    rows = [
        {
            'Source': u,
            'Target': v,
            'Type': 'Undirected',
            'Weight': 1,
            'Correlation': network.graph.edges[u, v]['correlation'],
        }
        for u, v in network.edges
    ]
    return pd.DataFrame(rows, columns=['Source', 'Target', 'Type', 'Weight', 'Correlation'])


def _json_default(obj):
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return None if np.isnan(obj) else float(obj)
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, pd.DataFrame):
        return obj.astype(object).where(obj.notna(), None).to_dict(orient='records')
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class OutputGenerator:
    """Writes result tables, Gephi exports and reports under one output directory."""

    def __init__(self, config: KeystoneConfig):
        self.config = config

    def write_table(self, df: pd.DataFrame, path: Path) -> Path:
        """Write a tab-separated table without index."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, sep='\t', index=False)
        logger.info(f"Saved {len(df)} rows to: {path}")
        return path

    def export_gephi(self, network: CooccurrenceNetwork, centralities: pd.DataFrame, group: str,
                     output_dir: str, taxonomy: Optional[pd.DataFrame] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Export one group's network as a Gephi node/edge CSV pair (and GraphML when enabled).

        Args:
            network: Network snapshot to export.
            centralities: Centrality records of the snapshot's nodes.
            group: Group label, used in file names.
            output_dir: Directory receiving the files.
            taxonomy: Optional taxonomy table joined on the node ID.

        Returns:
            Tuple[pd.DataFrame, pd.DataFrame]: The node and edge tables written.
        """
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        nodes = gephi_node_table(centralities, group, taxonomy, self.config.taxonomy_id_column)
        edges = gephi_edge_table(network)

        nodes_file = out_dir / f"{group}_nodes.csv"
        edges_file = out_dir / f"{group}_edges.csv"
        nodes.to_csv(nodes_file, index=False, encoding='utf-8')
        edges.to_csv(edges_file, index=False, encoding='utf-8')
        logger.info(f"  Exported: {nodes_file}")
        logger.info(f"  Exported: {edges_file}")

        if self.config.write_graphml:
            graph = nx.Graph(network.graph)
            attrs = nodes.set_index('Id').drop(columns=['Label'])
            for node in graph.nodes():
                for key, value in attrs.loc[node].items():
                    if pd.notna(value):
                        graph.nodes[node][key] = value.item() if hasattr(value, 'item') else value
            nx.write_graphml(graph, out_dir / f"{group}_network.graphml")
            logger.info(f"  Exported: {out_dir / f'{group}_network.graphml'}")

        logger.info(f"  Network statistics - Nodes: {len(network.nodes)} Edges: {len(network.edges)}")
        return nodes, edges

    def generate_json_output(self, results: Dict, output_dir: str) -> Path:
        """Save the results dictionary as a timestamped JSON file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        json_file = output_path / f"keystone_results_{timestamp}.json"
        with open(json_file, 'w') as f:
            json.dump(results, f, indent=2, default=_json_default)
        logger.info(f"Saved final results to: {json_file}")
        return json_file

    def generate_text_report(self, report: List[Dict], summaries: Dict[str, pd.DataFrame], output_dir: str) -> Path:
        """
        Write the run report: one line per processed unit, then the summary tables.

        Args:
            report: Records with group, stage, threshold, status and reason.
            summaries: Titled tables appended after the unit list.
            output_dir: Directory receiving ``run_report.txt``.
        """
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        report_file = output_path / "run_report.txt"

        report_df = pd.DataFrame(report, columns=['group', 'stage', 'threshold', 'status', 'reason'])
        n_ok = int((report_df['status'] == 'ok').sum())
        lines = [
            "=" * 70,
            "KEYSTONE NETWORK RUN REPORT",
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "=" * 70,
            f"Units completed: {n_ok} / {len(report_df)}",
            "",
            report_df.fillna('').to_string(index=False) if not report_df.empty else "(no units processed)",
        ]
        for title, table in summaries.items():
            if table is None or table.empty:
                continue
            lines.extend(["", "-" * 70, title, "-" * 70, table.to_string(index=False)])

        report_file.write_text("\n".join(lines) + "\n", encoding='utf-8')
        logger.info(f"Saved run report to: {report_file}")
        return report_file
