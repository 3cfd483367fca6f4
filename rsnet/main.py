"""
main
====

Command line entry point running the complete connectivity pipeline on
one functional run.  Inputs are, in order, a preprocessed 4D functional
image, a brain mask and a tissue segmentation on the same grid, a motion table
(CSV/TSV with ``trans_*``/``rot_*`` and ``framewise_displacement``
columns) and a point atlas whose coordinates are in the world space of
the functional image.

Example
-------
python -m rsnet.main func.nii.gz mask.nii.gz seg.nii.gz motion.tsv power264.csv \
    --output results --density 0.1

"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Optional

from .io import load_inputs, save_result
from .pipeline import RestingStatePipeline
from .preprocessing.config import PipelineConfig
from .preprocessing.roi import affine_coordinate_map


logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Merge the optional JSON configuration file with command line overrides."""
    options = {}
    if args.config:
        with open(args.config, 'r', encoding='utf-8') as f:
            options = json.load(f)
    config = PipelineConfig.from_dict(options)
    if args.fd_threshold is not None:
        config.artifacts.fd_threshold = args.fd_threshold
    if args.density is not None:
        config.network.density = args.density
    if args.radius is not None:
        config.roi.radius = args.radius
    if args.tr is not None:
        config.tr = args.tr
    config.validate()
    return config


def run_pipeline(args: argparse.Namespace) -> None:
    config = build_config(args)
    logger.debug("Configuration: %s", config)
    inputs, affine = load_inputs(args.func, args.mask, args.motion, args.atlas, args.tissue)
    pipeline = RestingStatePipeline(config, affine_coordinate_map(affine))
    result = pipeline.run(inputs)
    paths = save_result(result, args.output)
    summary = result.metrics.summary()
    print(
        f"{result.network.pruned.n_edges} edges, global efficiency "
        f"{summary['global_efficiency']:.4f}; results written to {paths['global_metrics'].parent}"
    )


def parse_args(args: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build a resting-state functional network for one run")
    parser.add_argument('func', type=str, help='4D functional NIfTI image')
    parser.add_argument('mask', type=str, help='Brain mask on the functional grid')
    parser.add_argument('tissue', type=str, help='Tissue segmentation on the functional grid')
    parser.add_argument('motion', type=str, help='Motion parameter table (CSV/TSV)')
    parser.add_argument('atlas', type=str, help='Point atlas table (CSV/TSV)')
    parser.add_argument('--output', type=str, default='rsnet_output', help='Output directory')
    parser.add_argument('--config', type=str, default=None, help='JSON file with pipeline options')
    parser.add_argument('--fd-threshold', type=float, default=None, help='Framewise displacement threshold (mm)')
    parser.add_argument('--density', type=float, default=None, help='Target edge density')
    parser.add_argument('--radius', type=float, default=None, help='ROI sphere radius (mm)')
    parser.add_argument('--tr', type=float, default=None, help='Repetition time (s) if missing from the header')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug messages')
    return parser.parse_args(args)


def main(argv: Optional[list[str]] = None) -> None:
    import sys
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    )
    run_pipeline(args)


if __name__ == '__main__':
    main()
