# main.py
import argparse
import asyncio
import logging
import os
import sys

from .constants import MAX_SLIDES, WAIT_MS, DUPLICATE_THRESHOLD, DEFAULT_OUTPUT_DIR, DEFAULT_PRESET_DIR, DEFAULT_FLOW_DIR
from .capture import capture_targets, discover_prototype_flows, run_guided_flow
from .errors import FigmaSnapError
from .presets import PresetCatalog, FALLBACK_PRESET
from .status import LoggingStatusSink
from .storage import FlowStore, PresetStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Figma prototype slide capture to PDF')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--presets-dir', default=DEFAULT_PRESET_DIR, help='Custom preset directory')
    parser.add_argument('--flows-dir', default=DEFAULT_FLOW_DIR, help='Saved flow directory')
    sub = parser.add_subparsers(dest='command')

    capture = sub.add_parser('capture', help='Capture prototype slides')
    add_capture_args(capture)
    capture.add_argument('--url', default=os.environ.get('FIGMA_URL'), help='Figma prototype URL')
    capture.add_argument('--node-id', action='append', dest='node_ids', default=[],
                         help='Flow node id (repeat for multiple flows)')
    capture.add_argument('--all-flows', action='store_true',
                         help='Capture every flow listed in the prototype sidebar')
    capture.add_argument('--max-slides', type=int, default=MAX_SLIDES, help='Max slides to capture')
    capture.add_argument('--wait', type=int, default=WAIT_MS, help='Wait time per slide (ms)')
    capture.add_argument('--duplicates', type=int, default=DUPLICATE_THRESHOLD,
                         help='Consecutive identical frames that end the capture')

    flow = sub.add_parser('flow', help='Manage and run guided flows')
    flow_sub = flow.add_subparsers(dest='flow_command', required=True)
    run = flow_sub.add_parser('run', help='Run a saved flow')
    run.add_argument('name')
    add_capture_args(run)
    flow_sub.add_parser('list', help='List saved flows')
    delete = flow_sub.add_parser('delete', help='Delete a saved flow')
    delete.add_argument('name')
    export = flow_sub.add_parser('export', help='Export all flows to a YAML bundle')
    export.add_argument('path')
    imp = flow_sub.add_parser('import', help='Import flows from a YAML/JSON bundle')
    imp.add_argument('path')

    presets = sub.add_parser('presets', help='List export presets')
    presets.add_argument('action', nargs='?', default='list', choices=['list'])
    return parser


def add_capture_args(parser: argparse.ArgumentParser):
    parser.add_argument('--output', default=os.environ.get('OUTPUT_DIR', DEFAULT_OUTPUT_DIR), help='Output directory')
    parser.add_argument('--password', default=os.environ.get('FIGMA_PASSWORD'), help='Figma password')
    parser.add_argument('--preset', default=None, help=f'Export preset (default: {FALLBACK_PRESET})')
    parser.add_argument('--chrome-path', default=None, help='Chrome/Chromium executable')
    parser.add_argument('--headless', action='store_true', help='Hide browser')
    parser.add_argument('--redact', action='store_true', help='Mask [mask] layers before capture')
    parser.add_argument('--settle', action='store_true', help='Wait for a stable frame before each capture')
    parser.add_argument('--label-frames', action='store_true', help='Annotate pages with frame names')
    parser.add_argument('--no-cover', action='store_true', help='Skip the cover page')


def capture_config(args) -> dict:
    return {
        'url': getattr(args, 'url', None),
        'password': args.password,
        'output_dir': args.output,
        'max_slides': getattr(args, 'max_slides', MAX_SLIDES),
        'wait_ms': getattr(args, 'wait', WAIT_MS),
        'duplicate_threshold': getattr(args, 'duplicates', DUPLICATE_THRESHOLD),
        'preset': args.preset,
        'chrome_path': args.chrome_path,
        'headless': args.headless,
        'redact': args.redact,
        'settle_frames': args.settle,
        'label_frames': args.label_frames,
        'cover_page': not args.no_cover,
    }


def load_catalog(presets_dir) -> PresetCatalog:
    catalog = PresetCatalog()
    catalog.merge(PresetStore(presets_dir).load_presets())
    return catalog


async def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)-5s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    status = LoggingStatusSink()
    flows = FlowStore(args.flows_dir)
    command = args.command
    if command is None:
        parser.print_help()
        return 2

    if command == 'presets':
        catalog = load_catalog(args.presets_dir)
        for name in catalog.names():
            preset = catalog.resolve(name)
            print(f"{name:20} {preset.page_size:8} margin={preset.margin:g} quality={preset.quality}  {preset.description}")
        return 0

    if command == 'flow' and args.flow_command != 'run':
        if args.flow_command == 'list':
            for flow in flows.list_flows():
                print(f"{str(flow['name']):30} {flow['updatedAt']}")
        elif args.flow_command == 'delete':
            print('Deleted' if flows.delete_flow(args.name) else f"Flow '{args.name}' not found")
        elif args.flow_command == 'export':
            print(f"Exported {len(flows.export_flows(args.path))} flows to {args.path}")
        elif args.flow_command == 'import':
            print(f"Imported {flows.import_flows(args.path)} flows")
        return 0

    catalog = load_catalog(args.presets_dir)
    config = capture_config(args)
    try:
        if command == 'flow':
            result = await run_guided_flow(flows.load_flow(args.name), config, status, catalog)
            return 0 if result.success else 1
        node_ids, labels = args.node_ids, None
        if args.all_flows:
            discovered = await discover_prototype_flows(config, status)
            if discovered:
                node_ids = [flow['nodeId'] for flow in discovered]
                labels = [flow['name'] for flow in discovered]
            else:
                status.warning('No flows found in the sidebar. Capturing the given target only.')
        results = await capture_targets(config, node_ids, status, catalog, labels=labels)
    except FigmaSnapError as e:
        logger.error(str(e))
        return 1
    return 0 if all(r.success for r in results) else 1


def run():
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
