from __future__ import annotations

import argparse
import sys

from sobi.dependencies import get_collator, get_dispatcher, get_registry, get_store
from sobi.logging_config import configure_logging
from sobi.services.fragments import ProcessorRegistry


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sobi",
        description="Collate incoming SOBI files and dispatch their fragments",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "collate",
        help="Extract fragments from every incoming SOBI file and archive the files",
    )
    subparsers.add_parser(
        "process",
        help="Dispatch every pending fragment to its registered processor",
    )

    retry = subparsers.add_parser(
        "retry",
        help="Dispatch a single fragment now, pending or not",
    )
    retry.add_argument("fragment_id", help="Fragment id, e.g. SOBI.D130323.T065432.TXT-1-CALENDAR")

    set_pending = subparsers.add_parser(
        "set-pending",
        help="Mark a fragment as pending (or not) for the next dispatch run",
    )
    set_pending.add_argument("fragment_id")
    set_pending.add_argument(
        "--no-pending",
        dest="pending",
        action="store_false",
        help="Clear the pending flag instead of setting it",
    )

    subparsers.add_parser(
        "audit",
        help="List archived SOBI files whose fragments were not all saved",
    )
    return parser


def _run(args: argparse.Namespace) -> int:
    store = get_store()

    if args.command == "collate":
        collated = get_collator(store).collate_all()
        print(f"[sobi] collated files={collated}", flush=True)
        return 0

    if args.command == "audit":
        incomplete = store.find_incomplete_archives()
        for file_name, expected, stored in incomplete:
            print(f"[sobi] incomplete file={file_name} expected={expected} stored={stored}", flush=True)
        print(f"[sobi] audit completed incomplete={len(incomplete)}", flush=True)
        return 1 if incomplete else 0

    # set-pending needs no processors, so don't import them.
    registry = get_registry() if args.command in {"process", "retry"} else ProcessorRegistry()
    dispatcher = get_dispatcher(store, registry)

    if args.command == "process":
        dispatched = dispatcher.dispatch_pending()
        print(f"[sobi] processed fragments={dispatched}", flush=True)
    elif args.command == "retry":
        fragment = dispatcher.dispatch_fragment(args.fragment_id)
        print(
            f"[sobi] dispatched fragment={fragment.fragment_id} "
            f"pending={fragment.pending_processing} attempts={fragment.processed_count}",
            flush=True,
        )
    elif args.command == "set-pending":
        fragment = dispatcher.update_pending_processing(args.fragment_id, args.pending)
        print(f"[sobi] fragment={fragment.fragment_id} pending={fragment.pending_processing}", flush=True)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        exit_code = _run(args)
    except Exception as exc:
        print(f"[sobi] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
