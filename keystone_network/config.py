# keystone_network/config.py
"""
Configuration module for keystone_network.
This file defines the dataclasses holding configurable parameters for the pipeline
and the per-group input locations, so nothing is inferred from the working directory.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

DEFAULT_SCORE_WEIGHTS = {
    'degree': 2.0,
    'closeness': 1.5,
    'transitivity': 1.5,
    'eigen_centrality': 1.0,
    'betweenness': -1.0,
}


@dataclass
class KeystoneConfig:
    """
    Configuration class for keystone network pipeline parameters.

    Attributes:
        thresholds (List[float]): Absolute-correlation cutoffs used to build one
            network per group and threshold (default: 0.2, 0.3, 0.4).
        top_fraction (float): Fraction of surviving nodes reported as keystone taxa.
            At least one node is always selected (default: 0.1).
        min_common_taxa (int): Minimum size of the aligned taxon set; smaller groups
            are skipped (default: 10).
        robust_min_thresholds (int): Number of distinct thresholds at which a node
            must be a keystone to be reported as robust (default: 2).
        score_weights (Dict[str, float]): Weight of each standardized centrality in the
            composite keystone score. Betweenness carries a negative weight.
        significance_level (float): P-value cutoff of the significance filter
            (default: 0.05).
        min_abs_correlation (float): Absolute-correlation cutoff of the significance
            filter (default: 0.3).
        strong_edge_threshold (float): Cutoff defining a strong edge when two
            correlation methods are compared (default: 0.3).
        gephi_threshold (float): Threshold of the network exported for Gephi
            (default: 0.3).
        write_graphml (bool): Also write a GraphML copy of each exported network.
        taxonomy_id_column (str): Identifier column of the taxonomy table (default: 'ASV').
        max_workers (int): Number of groups processed concurrently (default: 1).
        output_formats (List[str]): Report formats ('text', 'json').
    """
    # Network / keystone parameters
    thresholds: List[float] = field(default_factory=lambda: [0.2, 0.3, 0.4])
    top_fraction: float = 0.1
    min_common_taxa: int = 10
    robust_min_thresholds: int = 2
    score_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SCORE_WEIGHTS))

    # Significance filter parameters
    significance_level: float = 0.05
    min_abs_correlation: float = 0.3

    # Method comparison parameters
    strong_edge_threshold: float = 0.3

    # Export parameters
    gephi_threshold: float = 0.3
    write_graphml: bool = True
    taxonomy_id_column: str = 'ASV'

    # Processing parameters
    max_workers: int = 1

    # Output parameters
    output_formats: List[str] = field(default_factory=lambda: ["text", "json"])

    def validate(self) -> None:
        """Raise ValueError if any parameter is outside its valid range."""
        if not self.thresholds:
            raise ValueError("At least one correlation threshold is required.")
        for t in list(self.thresholds) + [self.gephi_threshold]:
            if not 0 < float(t) < 1:
                raise ValueError(f"Correlation thresholds must lie in (0, 1), got {t}")
        if not 0 < self.top_fraction <= 1:
            raise ValueError(f"top_fraction must lie in (0, 1], got {self.top_fraction}")
        if self.min_common_taxa < 2:
            raise ValueError(f"min_common_taxa must be at least 2, got {self.min_common_taxa}")
        if self.robust_min_thresholds < 1:
            raise ValueError("robust_min_thresholds must be at least 1")
        unknown = set(self.score_weights) - set(DEFAULT_SCORE_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown score weight(s): {sorted(unknown)}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")


@dataclass
class GroupInputs:
    """Input files of one experimental group."""
    group_id: str
    correlation_matrix_path: str
    pvalue_matrix_path: Optional[str] = None
    taxonomy_path: Optional[str] = None
    alternative_matrix_path: Optional[str] = None  # e.g. Spearman correlations for method comparison
