#!/usr/bin/env python3
"""
Command line entry point for the meta-expression graph pipeline.

Usage:
    mexgraph data/meta-expressions.csv --output-dir output
    mexgraph data/meta-expressions.csv --replace-emoticons-ignore-hashtags
    mexgraph data/meta-expressions.csv --config pipeline_config.json
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import LOG_FORMAT, load_config
from .exceptions import MexGraphError
from .pipeline import GraphPipeline

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog='mexgraph',
        description='Build an emoji/emoticon/hashtag co-occurrence graph from post records',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    mexgraph posts.csv --output-dir graph
    mexgraph posts.csv --replace-emoticons-ignore-hashtags --emoticon-map my_map.json
        """
    )

    parser.add_argument('input', type=str,
                        help='CSV with year, sequence number, emoji, emoticon and hashtag columns')
    parser.add_argument('--output-dir', type=str, help='Directory for nodes.tsv, edges.tsv and run_summary.json')
    parser.add_argument('--replace-emoticons-ignore-hashtags', action='store_true',
                        help='Map emoticons to emoji and leave hashtags out of the graph')
    parser.add_argument('--emoticon-map', type=str, help='JSON file mapping emoticons to emoji')
    parser.add_argument('--config', type=str, help='Path to configuration JSON file')
    parser.add_argument('--log-file', type=str, help='Also write log messages to this file')
    parser.add_argument('--no-progress', action='store_true', help='Hide progress bars')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug diagnostics')

    return parser.parse_args(argv)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function"""
    args = parse_arguments(argv)

    try:
        setup_logging(args.verbose, args.log_file)
    except OSError as e:
        print(f"Cannot open log file {args.log_file}: {e}", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config) if args.config else {}

        # Update config with command line arguments
        if args.replace_emoticons_ignore_hashtags:
            config['replace_emoticons_and_ignore_hashtags'] = True
        if args.emoticon_map:
            config['emoticon_map_path'] = args.emoticon_map
        if args.output_dir:
            config['output_dir'] = args.output_dir
        if args.no_progress:
            config['show_progress'] = False

        pipeline = GraphPipeline(config=config)
        result = pipeline.run(args.input)

    except MexGraphError as e:
        logger.error(f"❌ Pipeline execution failed: {e}")
        return 1

    logger.info(f"🎉 Graph written: {result.outputs['nodes']} and {result.outputs['edges']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
