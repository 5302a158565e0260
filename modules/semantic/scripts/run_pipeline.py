#!/usr/bin/env python3
"""
Run the semantic pipeline over a project directory.

Runs every stage by default, or only the stages named with --steps. With
--checkpoint, stage results are persisted so later stages can be run in a
separate invocation.

Usage:
    python run_pipeline.py ./my-project
    python run_pipeline.py ./my-project --patterns "src/**/*.{ts,tsx}" --index-type simple
    python run_pipeline.py ./my-project --steps parsing dependencies --checkpoint ./.semantic
    python run_pipeline.py ./my-project --steps vectorization indexing --checkpoint ./.semantic
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent.parent))

from modules.semantic.core.config import STAGE_ORDER, load_pipeline_config
from modules.semantic.core.errors import FatalStageError, PipelineError
from modules.semantic.core.pipeline import PipelineOrchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Parse, analyze, enrich, vectorize and index a source tree'
    )
    parser.add_argument(
        'project_path',
        help='Project root to process'
    )
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='Path to pipeline.yaml (default: $SEMANTIC_PIPELINE_CONFIG or config/pipeline.yaml)'
    )
    parser.add_argument(
        '--patterns',
        nargs='+',
        default=None,
        help='Glob patterns to include (supports ** and {a,b})'
    )
    parser.add_argument(
        '--files',
        nargs='+',
        default=None,
        help='Explicit file selection (overrides --patterns)'
    )
    parser.add_argument(
        '--exclude',
        nargs='+',
        default=None,
        help='Files to drop from an explicit selection'
    )
    parser.add_argument(
        '--steps',
        nargs='+',
        choices=STAGE_ORDER,
        default=None,
        help='Stages to run, in pipeline order (default: all)'
    )
    parser.add_argument(
        '--index-type',
        choices=['qdrant', 'simple'],
        default=None,
        help='Index backend'
    )
    parser.add_argument(
        '--embedding-model',
        default=None,
        help='Embedding model (text-embedding-* uses OpenAI, anything else the local hashing provider)'
    )
    parser.add_argument(
        '--checkpoint',
        default=None,
        help='Directory for per-stage result checkpoints'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s'
    )

    try:
        config = load_pipeline_config(
            args.config,
            project_path=args.project_path,
            file_patterns=args.patterns,
            selected_files=args.files,
            excluded_files=args.exclude,
            index_type=args.index_type,
            embedding_model=args.embedding_model,
            checkpoint_dir=args.checkpoint,
        )
    except (OSError, ValueError) as e:
        logger.error(f"❌ Invalid configuration: {e}")
        return 1

    if not config.project_root.is_dir():
        logger.error(f"❌ Project path not found: {config.project_root}")
        return 1

    orchestrator = PipelineOrchestrator(config)

    try:
        if args.steps:
            for stage in [s for s in STAGE_ORDER if s in args.steps]:
                result = orchestrator.run_step(stage)
                logger.info(f"📊 {stage}: {result['statistics']}")
        else:
            orchestrator.run_all()
    except FatalStageError as e:
        logger.error(f"❌ {e}")
        return 1
    except PipelineError as e:
        logger.error(f"❌ Pipeline error: {e}")
        return 1

    logger.info("🎉 Pipeline finished")
    return 0


if __name__ == '__main__':
    sys.exit(main())
