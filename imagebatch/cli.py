"""
Command Line Interface for batch image generation and review.
"""

import argparse
import asyncio
import logging
import os
from typing import List, Optional

from .batch_orchestrator import BatchOrchestrator
from .batch_progress import BatchProgress
from .batch_item import GeneratedImage
from .change_detector import ChangeDetector
from .config import OUTPUT_FORMATS, GenerationConfig, WorkflowConfig
from .exceptions import ImageBatchError
from .generation_client import GenerationClient
from .image_codec import convert_for_output_format, is_supported
from .index_store import IndexStore
from .prompts import DEFAULT_BATCH_PROMPT, build_prompt_from_filename
from .records import FileRecord, ReviewRecord
from .reporter import Reporter
from .review_scanner import ReviewScanner
from .review_workflow import ReviewWorkflowEngine
from .variation_writer import overwrite_variations
from .zip_export import write_batch_zip


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return logging.getLogger('imagebatch')


def get_generation_config(args: argparse.Namespace) -> GenerationConfig:
    """Get service configuration from environment and CLI overrides."""
    config = GenerationConfig.from_env()

    if getattr(args, 'api_key', None):
        config.api_key = args.api_key.strip()
    if getattr(args, 'model', None):
        config.model = args.model
    if getattr(args, 'image_size', None):
        config.image_size = args.image_size
    if getattr(args, 'variations', None):
        config.variation_count = args.variations

    return config


def get_workflow_config(args: argparse.Namespace) -> WorkflowConfig:
    """Get workflow configuration from environment and CLI overrides."""
    config = WorkflowConfig.from_env()

    if getattr(args, 'state_dir', None):
        config.state_dir = args.state_dir
    if getattr(args, 'output_format', None):
        config.output_format = args.output_format
    if getattr(args, 'delay', None) is not None:
        config.item_delay = args.delay
    if getattr(args, 'cooldown', None) is not None:
        config.rate_limit_cooldown = args.cooldown

    return config


def _validate(config: WorkflowConfig, logger: logging.Logger) -> bool:
    errors = config.validate()
    for error in errors:
        logger.error(error)
    return not errors


def open_batch_store(config: WorkflowConfig, logger: logging.Logger) -> IndexStore:
    return IndexStore.open(config.batch_index_path, FileRecord, logger)


def open_review_store(config: WorkflowConfig, logger: logging.Logger) -> IndexStore:
    return IndexStore.open(config.review_index_path, ReviewRecord, logger)


def cmd_scan(args: argparse.Namespace) -> int:
    """Execute scan command."""
    logger = setup_logging(args.verbose)
    config = get_workflow_config(args)
    if not _validate(config, logger):
        return 1

    try:
        detector = ChangeDetector(open_batch_store(config, logger), config, logger)
        scan = detector.scan(args.folder)
        Reporter().report_batch_scan(scan, list_pending=args.list)
        return 0
    except Exception as e:
        logger.error(f"Scan failed: {e}")
        return 1


def cmd_batch(args: argparse.Namespace) -> int:
    """Execute batch command."""
    logger = setup_logging(args.verbose)
    config = get_workflow_config(args)
    if not _validate(config, logger):
        return 1
    gen_config = get_generation_config(args)

    if args.limit:
        logger.info(f"Test mode: limiting to {args.limit} files")

    try:
        detector = ChangeDetector(open_batch_store(config, logger), config, logger)
        scan = detector.scan(args.folder)

        orchestrator = BatchOrchestrator(
            detector=detector,
            client=GenerationClient(gen_config, logger=logger),
            config=config,
            dry_run=args.dry_run,
            logger=logger
        )

        progress = None
        if not args.quiet:
            progress = BatchProgress(show_files=args.show_files, logger=logger)

        stats = asyncio.run(orchestrator.run(
            scan,
            prompt=args.prompt or DEFAULT_BATCH_PROMPT,
            image_size=gen_config.image_size,
            progress=progress,
            limit=args.limit
        ))

        if args.zip and stats.results:
            write_batch_zip(args.zip, stats.results, config.output_format, logger)
            logger.info(f"ZIP archive written to: {args.zip}")

        if not args.quiet:
            print()
            Reporter().report_batch_run(stats)

        return 0 if stats.errors == 0 else 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ImageBatchError as e:
        logger.error(f"Batch failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Batch failed: {e}")
        return 1


def cmd_generate(args: argparse.Namespace) -> int:
    """Execute generate command for a single image."""
    logger = setup_logging(args.verbose)
    config = get_workflow_config(args)
    if not _validate(config, logger):
        return 1
    gen_config = get_generation_config(args)

    if not os.path.isfile(args.image) or not is_supported(args.image):
        logger.error(f"Not a supported image file: {args.image}")
        return 1

    if args.prompt:
        prompt = args.prompt
    else:
        prompt = build_prompt_from_filename(args.image)
        logger.info(f"Prompt: {prompt}")

    output_dir = args.output or os.path.join(
        os.path.dirname(os.path.abspath(args.image)),
        f"{os.path.splitext(os.path.basename(args.image))[0]}_variations",
    )

    try:
        client = GenerationClient(gen_config, logger=logger)
        images = asyncio.run(client.generate_from_file(args.image, prompt, gen_config.image_size))

        converted = []
        for image in images:
            data, mime_type = convert_for_output_format(image.data, image.mime_type, config.output_format)
            converted.append(GeneratedImage(data=data, mime_type=mime_type))

        paths = overwrite_variations(output_dir, converted, logger)
        for path in paths:
            print(path)
        logger.info(f"Generated {len(paths)} variation(s) in {output_dir}")
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ImageBatchError as e:
        logger.error(f"Generation failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Generation failed: {e}")
        return 1


def _build_engine(args: argparse.Namespace, logger: logging.Logger) -> Optional[ReviewWorkflowEngine]:
    config = get_workflow_config(args)
    if not _validate(config, logger):
        return None
    scanner = ReviewScanner(open_review_store(config, logger), config, logger)
    client = GenerationClient(get_generation_config(args), logger=logger)
    return ReviewWorkflowEngine(scanner, client, logger=logger)


def cmd_review(args: argparse.Namespace) -> int:
    """Execute review command: show the state of a processed folder."""
    logger = setup_logging(args.verbose)
    engine = _build_engine(args, logger)
    if engine is None:
        return 1

    async def run() -> None:
        scan = await engine.load_folder(args.folder)
        Reporter().report_review(scan, engine.status())

    try:
        asyncio.run(run())
        return 0
    except Exception as e:
        logger.error(f"Review failed: {e}")
        return 1


def cmd_select(args: argparse.Namespace) -> int:
    """Execute select command: commit a variation for one item."""
    logger = setup_logging(args.verbose)
    engine = _build_engine(args, logger)
    if engine is None:
        return 1

    async def run() -> str:
        await engine.load_folder(args.folder)
        engine.move_to(args.item)
        return await engine.commit_selection(args.index, args.notes or '', args.transparency)

    try:
        destination = asyncio.run(run())
        print(destination)
        status = engine.status()
        logger.info(f"Reviewed {status.reviewed}/{status.total}, next: {status.current_relative_path or '-'}")
        return 0
    except (KeyError, ValueError, ImageBatchError) as e:
        logger.error(f"Selection failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Selection failed: {e}")
        return 1


def cmd_redo(args: argparse.Namespace) -> int:
    """Execute redo command: regenerate the variations of one or more items."""
    logger = setup_logging(args.verbose)
    engine = _build_engine(args, logger)
    if engine is None:
        return 1

    async def run() -> None:
        await engine.load_folder(args.folder)
        engine.client.config.require_api_key()
        for item in args.items:
            engine.move_to(item)
            await engine.redo(args.prompt, args.image_size)
        await engine.wait_for_redo_queue()

    try:
        asyncio.run(run())
        status = engine.status()
        logger.info(f"Redo finished. Pending: {status.pending}, reviewed: {status.reviewed}")
        if engine.failed_redo_count:
            logger.error(f"{engine.failed_redo_count} redo job(s) failed")
            return 1
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (KeyError, ImageBatchError) as e:
        logger.error(f"Redo failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Redo failed: {e}")
        return 1


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments shared by every command."""
    parser.add_argument('--state-dir', help='Override IMAGEBATCH_STATE_DIR (index location)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')


def add_service_arguments(parser: argparse.ArgumentParser) -> None:
    """Add generation service arguments to a parser."""
    group = parser.add_argument_group('Generation Service')
    group.add_argument('--api-key', help='Override GEMINI_API_KEY')
    group.add_argument('--model', help='Override IMAGEBATCH_MODEL')
    group.add_argument('--image-size', help='Size class, e.g. 1K, 2K, 4K (default: 1K)')
    group.add_argument('--variations', type=int, metavar='N', help='Variations per image (default: 4)')


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='imagebatch',
        description='Batch image generation and review',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Workflow:
  1. Scan:     python -m imagebatch scan textures/
  2. Batch:    python -m imagebatch batch textures/ --prompt "..."
  3. Review:   python -m imagebatch review textures_processed/
  4. Select:   python -m imagebatch select textures_processed/ wood.png 2
  5. Redo:     python -m imagebatch redo textures_processed/ wood.png

The API key is read from GEMINI_API_KEY (or API_KEY).
"""
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Show pending and processed images of a folder')
    scan_parser.add_argument('folder', help='Source image folder')
    scan_parser.add_argument('--list', action='store_true', help='List pending files')
    add_common_arguments(scan_parser)

    # Batch command
    batch_parser = subparsers.add_parser('batch', help='Generate variations for pending images of a folder')
    batch_parser.add_argument('folder', help='Source image folder')
    batch_parser.add_argument('-p', '--prompt', help='Instruction for the model')
    batch_parser.add_argument('--output-format', choices=OUTPUT_FORMATS, help='Format of written variations')
    batch_parser.add_argument('--delay', type=float, help='Seconds between images (default: 1)')
    batch_parser.add_argument('--cooldown', type=float, help='Seconds to pause after a rate limit (default: 10)')
    batch_parser.add_argument('--zip', metavar='PATH', help='Also write a ZIP archive of the generated images')
    batch_parser.add_argument('-n', '--dry-run', action='store_true', help='Show what would be done')
    batch_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    batch_parser.add_argument('--show-files', action='store_true',
                              help='Print each file as processed with result')
    batch_parser.add_argument('--limit', type=int, metavar='N',
                              help='Limit to N images (for testing)')
    add_service_arguments(batch_parser)
    add_common_arguments(batch_parser)

    # Generate command
    gen_parser = subparsers.add_parser('generate', help='Generate variations of a single image')
    gen_parser.add_argument('image', help='Source image file')
    gen_parser.add_argument('-p', '--prompt', help='Instruction (default: derived from the file name)')
    gen_parser.add_argument('-o', '--output', help='Output folder (default: <name>_variations)')
    gen_parser.add_argument('--output-format', choices=OUTPUT_FORMATS, help='Format of written variations')
    add_service_arguments(gen_parser)
    add_common_arguments(gen_parser)

    # Review command
    review_parser = subparsers.add_parser('review', help='Show the review state of a processed folder')
    review_parser.add_argument('folder', help='Processed folder')
    add_common_arguments(review_parser)

    # Select command
    select_parser = subparsers.add_parser('select', help='Commit a variation for a review item')
    select_parser.add_argument('folder', help='Processed folder')
    select_parser.add_argument('item', help='Relative source path of the item')
    select_parser.add_argument('index', type=int, help='1-based variation index')
    select_parser.add_argument('--notes', help='Reviewer notes')
    select_parser.add_argument('--transparency', action='store_true', help='Flag the selection as transparent')
    add_common_arguments(select_parser)

    # Redo command
    redo_parser = subparsers.add_parser('redo', help='Regenerate the variations of review items')
    redo_parser.add_argument('folder', help='Processed folder')
    redo_parser.add_argument('items', nargs='+', help='Relative source path(s) of the items')
    redo_parser.add_argument('-p', '--prompt', help='Instruction for the model')
    add_service_arguments(redo_parser)
    add_common_arguments(redo_parser)

    return parser


COMMANDS = {
    'scan': cmd_scan,
    'batch': cmd_batch,
    'generate': cmd_generate,
    'review': cmd_review,
    'select': cmd_select,
    'redo': cmd_redo,
}


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    return COMMANDS[parsed_args.command](parsed_args)
