# keystone_network.py
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .centrality import compute_centralities
from .config import GroupInputs, KeystoneConfig
from .data_loader import DataLoader
from .exceptions import KeystoneNetworkError
from .network_builder import build_network
from .output_generator import OutputGenerator
from .sensitivity import (SensitivityAnalyzer, concat_tables, keystone_feature_correlations,
                          robust_keystone_taxa, summarize_keystones, threshold_overlap)
from .statistical_validation import SUMMARY_COLUMNS, SignificanceFilter, compare_correlation_methods

logger = logging.getLogger(__name__)


class KeystoneNetworkParser:
    """
    Orchestrates the keystone network pipeline over a set of groups.
    """

    def __init__(self, config: KeystoneConfig):
        config.validate()
        logger.info(f"Initializing KeystoneNetworkParser with config: {vars(config)}")
        self.config = config
        self.loader = DataLoader()
        self.significance = SignificanceFilter(config)
        self.analyzer = SensitivityAnalyzer(config)
        self.output = OutputGenerator(config)

    def run_pipeline(self, groups: List[GroupInputs], output_dir: str = "results/",
                     node_metadata_path: Optional[str] = None, taxonomy_path: Optional[str] = None,
                     run_significance: bool = True, run_sensitivity: bool = True,
                     export_gephi: bool = True) -> Dict:
        """
        Execute the full pipeline: load inputs, filter significant pairs, identify keystone
        taxa across thresholds, export networks and write every result table.

        Args:
            groups (List[GroupInputs]): Input files of each group.
            output_dir (str, optional): Output directory. Defaults to "results/".
            node_metadata_path (Optional[str]): Node centrality properties table restricting
                the taxon set of each (group, threshold). Defaults to None.
            taxonomy_path (Optional[str]): Taxonomy table used for groups without their own.
            run_significance (bool, optional): Run the significance filter. Defaults to True.
            run_sensitivity (bool, optional): Run the threshold sensitivity analysis. Defaults to True.
            export_gephi (bool, optional): Export Gephi node/edge files. Defaults to True.

        Returns:
            dict: Pipeline results (tables as DataFrames plus the run report).
        """
        if not groups:
            raise ValueError("No groups to process.")
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        report: List[Dict] = []

        logger.info("📥 Stage 1: Shared Inputs")
        metadata = self._load_optional(self.loader.load_node_metadata, node_metadata_path, 'node_metadata', report)
        taxonomy = self._load_optional(
            lambda p: self.loader.load_taxonomy(p, self.config.taxonomy_id_column), taxonomy_path, 'taxonomy', report
        )

        logger.info(f"🔗 Stage 2: Group Analysis ({len(groups)} groups)")
        tasks = dict(metadata=metadata, taxonomy=taxonomy, output_dir=out, run_significance=run_significance,
                     run_sensitivity=run_sensitivity, export_gephi=export_gephi)
        if self.config.max_workers > 1 and len(groups) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                outcomes = list(pool.map(lambda g: self._process_group(g, **tasks), groups))
        else:
            outcomes = [self._process_group(g, **tasks) for g in groups]

        logger.info("📤 Stage 3: Output Generation")
        for outcome in outcomes:
            report.extend(outcome['report'])
        results = self._write_outputs(outcomes, report, out)

        n_ok = sum(1 for r in report if r['status'] == 'ok')
        logger.info(f"✅ Pipeline completed: {n_ok}/{len(report)} units succeeded")
        return results

    def _load_optional(self, load, path: Optional[str], stage: str, report: List[Dict]):
        if not path:
            return None
        try:
            return load(path)
        except KeystoneNetworkError as e:
            logger.warning(f"Could not load {stage}: {e}. Continuing without it.")
            report.append(_record('*', stage, None, 'skipped', f"{type(e).__name__}: {e}"))
            return None

    def _process_group(self, inputs: GroupInputs, metadata: Optional[pd.DataFrame],
                       taxonomy: Optional[pd.DataFrame], output_dir: Path, run_significance: bool,
                       run_sensitivity: bool, export_gephi: bool) -> Dict:
        """Run every stage of one group. Failures are recorded, never raised."""
        group = inputs.group_id
        outcome = {'group': group, 'report': [], 'significance': None, 'sensitivity': None,
                   'gephi': None, 'method_comparison': None}
        report = outcome['report']
        logger.info(f"Processing group: {group}")

        try:
            correlation = self.loader.load_correlation_matrix(inputs.correlation_matrix_path)
        except KeystoneNetworkError as e:
            logger.warning(f"  Group {group} skipped: {e}")
            report.append(_record(group, 'load', None, 'skipped', f"{type(e).__name__}: {e}"))
            return outcome

        if run_significance:
            if inputs.pvalue_matrix_path:
                try:
                    pvalues = self.loader.load_pvalue_matrix(inputs.pvalue_matrix_path)
                    outcome['significance'] = self.significance.filter_group(
                        group, correlation, pvalues, output_dir=str(output_dir / 'significance')
                    )
                    report.append(_record(group, 'significance', None, 'ok'))
                except KeystoneNetworkError as e:
                    logger.warning(f"  Significance filter skipped for {group}: {e}")
                    report.append(_record(group, 'significance', None, 'skipped', f"{type(e).__name__}: {e}"))
            else:
                report.append(_record(group, 'significance', None, 'skipped', 'no p-value matrix'))

        if run_sensitivity:
            logger.info(f"=== Keystone sensitivity for group {group} ===")
            result = self.analyzer.analyze_group(group, correlation, metadata)
            outcome['sensitivity'] = result
            for t in result.thresholds_completed:
                report.append(_record(group, 'keystone', t, 'ok'))
            for s in result.skipped:
                report.append(_record(group, 'keystone', s['threshold'], 'skipped', f"{s['reason']}: {s['detail']}"))

        if export_gephi:
            outcome['gephi'] = self._export_group_network(inputs, correlation, metadata, taxonomy,
                                                          output_dir / 'gephi', report)

        if inputs.alternative_matrix_path:
            try:
                alternative = self.loader.load_correlation_matrix(inputs.alternative_matrix_path)
                outcome['method_comparison'] = compare_correlation_methods(
                    group, correlation, alternative,
                    strong_threshold=self.config.strong_edge_threshold,
                    min_taxa=self.config.min_common_taxa,
                )
                report.append(_record(group, 'method_comparison', None, 'ok'))
            except KeystoneNetworkError as e:
                logger.warning(f"  Method comparison skipped for {group}: {e}")
                report.append(_record(group, 'method_comparison', None, 'skipped', f"{type(e).__name__}: {e}"))

        return outcome

    def _export_group_network(self, inputs: GroupInputs, correlation: pd.DataFrame,
                              metadata: Optional[pd.DataFrame], taxonomy: Optional[pd.DataFrame],
                              gephi_dir: Path, report: List[Dict]) -> Optional[Dict]:
        group = inputs.group_id
        threshold = self.config.gephi_threshold
        try:
            if inputs.taxonomy_path:
                taxonomy = self.loader.load_taxonomy(inputs.taxonomy_path, self.config.taxonomy_id_column)
            required = self.loader.metadata_nodes(metadata, group, threshold) if metadata is not None else None
            (aligned,), _ = self.loader.align_matrices([correlation], required_ids=required,
                                                       min_taxa=self.config.min_common_taxa)
            network = build_network(aligned, threshold)
        except KeystoneNetworkError as e:
            logger.warning(f"  Gephi export skipped for {group}: {e}")
            report.append(_record(group, 'gephi', threshold, 'skipped', f"{type(e).__name__}: {e}"))
            return None

        centralities = compute_centralities(network, group=group)
        nodes, edges = self.output.export_gephi(network, centralities, group, str(gephi_dir), taxonomy)
        report.append(_record(group, 'gephi', threshold, 'ok'))
        return {'nodes': nodes, 'edges': edges}

    def _write_outputs(self, outcomes: List[Dict], report: List[Dict], out: Path) -> Dict:
        """Merge per-group outcomes in input order and write the combined tables."""
        sig_summary = pd.DataFrame(
            [o['significance'].summary for o in outcomes if o['significance'] is not None],
            columns=SUMMARY_COLUMNS,
        )
        sensitivity = [o['sensitivity'] for o in outcomes if o['sensitivity'] is not None]
        centralities = concat_tables([s.centralities for s in sensitivity])
        keystones = concat_tables([s.keystones for s in sensitivity])
        network_stats = concat_tables([s.network_stats for s in sensitivity])
        comparisons = pd.DataFrame([o['method_comparison'] for o in outcomes if o['method_comparison']])

        keystone_summary = summarize_keystones(keystones)
        overlap = threshold_overlap(keystones, self.config.thresholds)
        robust = robust_keystone_taxa(keystones, self.config.robust_min_thresholds)
        feature_cor = keystone_feature_correlations(keystones) if not keystones.empty else pd.DataFrame()

        if not sig_summary.empty:
            self.output.write_table(sig_summary, out / 'significance' / 'sparcc_network_summary.txt')
        if not keystones.empty:
            network_dir = out / 'network'
            self.output.write_table(centralities, network_dir / 'node_centrality_properties.txt')
            self.output.write_table(keystones, network_dir / 'keystone_taxa_sensitivity_analysis.txt')
            self.output.write_table(keystone_summary, network_dir / 'keystone_taxa_sensitivity_summary.txt')
            self.output.write_table(overlap, network_dir / 'keystone_overlap_analysis.txt')
            self.output.write_table(robust, network_dir / 'robust_keystone_taxa.txt')
            self.output.write_table(feature_cor, network_dir / 'keystone_feature_correlations.txt')
            self.output.write_table(network_stats, network_dir / 'network_statistics.txt')
            if not robust.empty:
                logger.info(f"Robust keystone taxa (>= {self.config.robust_min_thresholds} thresholds): {len(robust)}")
        else:
            logger.warning("Cannot compute keystone taxa, possibly insufficient data")
        if not comparisons.empty:
            self.output.write_table(comparisons, out / 'sensitivity_analysis' / 'strong_edges_comparison.txt')

        results = {
            'groups': [o['group'] for o in outcomes],
            'significance_summary': sig_summary,
            'node_centralities': centralities,
            'keystone_taxa': keystones,
            'keystone_summary': keystone_summary,
            'threshold_overlap': overlap,
            'robust_keystone_taxa': robust,
            'keystone_feature_correlations': feature_cor,
            'network_statistics': network_stats,
            'method_comparison': comparisons,
            'report': report,
        }

        if 'text' in self.config.output_formats:
            self.output.generate_text_report(report, {
                'Significance summary': sig_summary,
                'Keystone taxa summary': keystone_summary,
                'Keystone overlap between thresholds': overlap,
                'Robust keystone taxa': robust,
            }, str(out))
        if 'json' in self.config.output_formats:
            self.output.generate_json_output(
                {k: v for k, v in results.items() if k != 'node_centralities'}, str(out)
            )
        return results


def _record(group: str, stage: str, threshold: Optional[float], status: str, reason: str = '') -> Dict:
    return {'group': group, 'stage': stage, 'threshold': threshold, 'status': status, 'reason': reason}


def run_keystone_analysis(**kwargs):
    """
    Entry-point function for pipeline execution.
    """
    logger.info("Initializing KeystoneNetworkParser with provided configuration.")
    config = kwargs.pop('config', None) or KeystoneConfig()
    parser = KeystoneNetworkParser(config)
    logger.info("Starting pipeline execution...")
    return parser.run_pipeline(**kwargs)
