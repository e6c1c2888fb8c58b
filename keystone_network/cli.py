import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import KeystoneConfig
from .keystone_network import run_keystone_analysis
from .utils import (LOG_FORMAT, create_config_from_args, load_group_manifest, parse_group_spec,
                    parse_thresholds, setup_logging)

logger = logging.getLogger(__name__)

VALID_EXTENSIONS = {
    'matrix': ('.txt', '.tsv'),
    'node_metadata': ('.txt', '.tsv'),
    'taxonomy': ('.csv',),
    'config': ('.yml', '.yaml', '.json'),
}


def validate_file_path(file_path: str, file_type: str) -> Path:
    """Validate if file exists and has correct extension."""
    path = Path(file_path)
    if not path.is_file():
        logger.error(f"{file_type} file does not exist: {file_path}")
        sys.exit(1)

    if file_type in VALID_EXTENSIONS and path.suffix.lower() not in VALID_EXTENSIONS[file_type]:
        logger.error(f"Invalid {file_type} file format: {file_path}. Expected extensions: {VALID_EXTENSIONS[file_type]}")
        sys.exit(1)

    return path


def setup_argument_parser() -> argparse.ArgumentParser:
    """Set up the argument parser with organized argument groups."""
    parser = argparse.ArgumentParser(
        prog="keystone-network",
        description=(
            "Keystone network analysis of microbial co-occurrence networks.\n"
            "Filters significant taxon pairs, builds threshold networks, scores keystone taxa "
            "across thresholds and exports the networks for Gephi."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog="Example: keystone-network --group Healthy=cor_healthy.txt,pval_healthy.txt --output-dir results/"
    )

    # Input File Arguments
    input_group = parser.add_argument_group('Input Files')
    input_group.add_argument(
        "--config", type=str, default=None,
        help="YAML/JSON manifest listing the groups and their matrices (may also hold parameters)."
    )
    input_group.add_argument(
        "--group", dest="groups", action="append", type=parse_group_spec, default=[],
        metavar="NAME=COR[,PVAL]",
        help="Group name with its correlation matrix and optional p-value matrix. Repeatable."
    )
    input_group.add_argument(
        "--node-metadata", type=str, default=None,
        help="Node centrality properties table restricting the taxa of each group and threshold."
    )
    input_group.add_argument(
        "--taxonomy", type=str, default=None,
        help="Taxonomy CSV joined to the exported Gephi node tables."
    )

    # Analysis Parameters
    analysis_group = parser.add_argument_group('Analysis Parameters')
    analysis_group.add_argument(
        "--thresholds", type=parse_thresholds, default=None,
        help="Comma-separated correlation thresholds (default from config: 0.2,0.3,0.4)."
    )
    analysis_group.add_argument(
        "--top-fraction", type=float, default=None,
        help="Fraction of nodes reported as keystone taxa (default from config: 0.1)."
    )
    analysis_group.add_argument(
        "--max-workers", type=int, default=None,
        help="Number of groups processed concurrently."
    )

    # Pipeline Stages
    stage_group = parser.add_argument_group('Pipeline Stages')
    stage_group.add_argument(
        "--skip-significance", action="store_true",
        help="Skip the p-value significance filter."
    )
    stage_group.add_argument(
        "--skip-sensitivity", action="store_true",
        help="Skip the keystone threshold sensitivity analysis."
    )
    stage_group.add_argument(
        "--skip-gephi", action="store_true",
        help="Skip the Gephi network export."
    )

    # Output Arguments
    output_group = parser.add_argument_group('Output')
    output_group.add_argument(
        "--output-dir", type=str, default="results/",
        help="Directory to save result tables, exports and logs."
    )
    output_group.add_argument(
        "--version", action="version", version=f"keystone-network {__version__}",
        help="Show program's version number and exit."
    )

    return parser


def main(argv: Optional[List[str]] = None):
    """Main function to orchestrate the keystone network pipeline."""
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    parser = setup_argument_parser()
    args = parser.parse_args(argv)

    try:
        groups = list(args.groups)
        node_metadata = args.node_metadata
        taxonomy = args.taxonomy
        config = KeystoneConfig()

        if args.config:
            manifest = load_group_manifest(str(validate_file_path(args.config, 'config')))
            config = manifest['config']
            groups = manifest['groups'] + groups
            node_metadata = node_metadata or manifest['node_metadata']
            taxonomy = taxonomy or manifest['taxonomy']

        if not groups:
            parser.error("no groups given; use --config or --group")

        # a missing group matrix skips that group only, the run report records it
        for g in groups:
            if not Path(g.correlation_matrix_path).is_file():
                logger.warning(f"Correlation matrix of group {g.group_id} does not exist: "
                               f"{g.correlation_matrix_path}")
        if node_metadata:
            logger.info(f"Node metadata: {node_metadata}")
        if taxonomy:
            logger.info(f"Taxonomy: {taxonomy}")

        config = create_config_from_args(args, config)
        setup_logging(args.output_dir)

        logger.info("Starting keystone network pipeline")
        logger.info(f"Groups: {', '.join(g.group_id for g in groups)}")
        logger.info(f"Thresholds: {config.thresholds}")
        logger.info(f"Output directory: {args.output_dir}")

        run_keystone_analysis(
            config=config,
            groups=groups,
            output_dir=args.output_dir,
            node_metadata_path=node_metadata,
            taxonomy_path=taxonomy,
            run_significance=not args.skip_significance,
            run_sensitivity=not args.skip_sensitivity,
            export_gephi=not args.skip_gephi,
        )

        logger.info("Keystone network pipeline completed successfully")

    except KeyboardInterrupt:
        logger.error("Pipeline interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
