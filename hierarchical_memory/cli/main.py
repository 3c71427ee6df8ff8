"""CLI: hierarchical-memory stats, search, context, ingest, emotions, entities, config validate."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from ..config import load_config, validate_config
from ..core.snapshot import snapshot_to_dict
from ..registry import MemoryRegistry
from ..storage.filesystem import FilesystemProfileStore
from ..types import CorruptStateError, HierarchicalMemoryError, MessageItem


def _open(args) -> tuple[MemoryRegistry, FilesystemProfileStore]:
    config = load_config(args.config)
    store = FilesystemProfileStore(root=args.root or config.storage.root)
    return MemoryRegistry(config=config), store


def _load_entity(registry: MemoryRegistry, store: FilesystemProfileStore, entity_id: str) -> bool:
    """Import the stored profile for *entity_id*. Returns False if none exists."""
    profile = store.load(entity_id)
    if profile is None:
        return False
    asyncio.run(registry.import_profile(profile))
    return True


def cmd_stats(args):
    """Show item counts, levels and budget usage for an entity."""
    registry, store = _open(args)
    if not _load_entity(registry, store, args.entity):
        print(f"No stored memory for {args.entity}.")
        return

    stats = registry.get_stats(args.entity)
    print(f"Entity:         {args.entity}")
    print(f"Messages:       {stats.total_messages}")
    print(f"Summaries:      {stats.total_summaries}")
    print(f"Active Items:   {stats.active_items} ({stats.active_messages} raw)")
    print(f"Budget:         {stats.budget.current_chars:,}/{stats.budget.max_chars:,} chars "
          f"({stats.budget.percentage}%)")
    print(f"L1 Threshold:   {stats.l1_threshold}")
    print(f"Compression:    {stats.compression_ratio:.1%}")
    if stats.level_counts:
        print()
        print(f"{'Level':<8} {'Active':>6}")
        print("-" * 15)
        for level, count in stats.level_counts.items():
            print(f"{'L' + str(level):<8} {count:>6}")


def cmd_search(args):
    """Rank an entity's memory items against a query."""
    registry, store = _open(args)
    if not _load_entity(registry, store, args.entity):
        print(f"No stored memory for {args.entity}.")
        return

    hits = registry.search(args.entity, args.query, args.limit)
    if not hits:
        print("No matching memory.")
        return

    for hit in hits:
        item = hit.item
        label = item.role if isinstance(item, MessageItem) else f"L{item.level}"
        print(f"[{hit.score:.3f}] #{item.id} {label}: {item.text}")
        print(f"         tags: {', '.join(hit.matched_tags)}")


def cmd_context(args):
    """Print the bounded context string for a query."""
    registry, store = _open(args)
    if not _load_entity(registry, store, args.entity):
        print(f"No stored memory for {args.entity}.", file=sys.stderr)
        sys.exit(1)
    print(registry.build_context(args.entity, args.query, args.max_chars))


def _read_messages(path: str | None) -> list[dict]:
    if path:
        text = Path(path).read_text(encoding="utf-8")
    else:
        text = sys.stdin.read()
    messages = []
    for n, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
            role, content = record["role"], record["text"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise ValueError(f"line {n}: expected {{\"role\", \"text\"}} JSON ({e})") from e
        if role not in ("user", "assistant"):
            raise ValueError(f"line {n}: unknown role {role!r}")
        messages.append({"role": role, "text": str(content)})
    return messages


async def _ingest(
    registry: MemoryRegistry,
    store: FilesystemProfileStore,
    entity_id: str,
    messages: list[dict],
    observe: bool,
) -> int:
    """Restore the stored profile, append *messages*, return summaries created."""
    profile = store.load(entity_id)
    if profile is not None:
        await registry.import_profile(profile)
    before = registry.get_stats(entity_id).total_summaries
    for m in messages:
        await registry.add_message(entity_id, m["role"], m["text"])
        if observe:
            registry.emotions(entity_id).observe(m["text"])
    return registry.get_stats(entity_id).total_summaries - before


def cmd_ingest(args):
    """Append JSONL messages to an entity's memory and save the profile."""
    registry, store = _open(args)
    try:
        messages = _read_messages(args.input)
    except ValueError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        sys.exit(1)

    if not messages:
        print("No messages to ingest.")
        return

    created = asyncio.run(
        _ingest(registry, store, args.entity, messages, args.observe_emotions)
    )
    after = registry.get_stats(args.entity)
    path = store.save(registry.export_profile(args.entity))

    print(f"Ingested {len(messages)} messages into {args.entity}")
    print(f"Summaries created: {created}")
    print(f"Budget: {after.budget.current_chars:,}/{after.budget.max_chars:,} chars "
          f"({after.budget.percentage}%)")
    print(f"Saved: {path}")


def cmd_emotions(args):
    """Print the emotional report for an entity."""
    registry, store = _open(args)
    if not _load_entity(registry, store, args.entity):
        print(f"No stored memory for {args.entity}.")
        return
    print(registry.emotions(args.entity).report())


def cmd_export(args):
    """Dump an entity's memory snapshot as JSON."""
    registry, store = _open(args)
    if not _load_entity(registry, store, args.entity):
        print(f"No stored memory for {args.entity}.", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(snapshot_to_dict(registry.export_snapshot(args.entity)), indent=2, ensure_ascii=False))


def cmd_entities(args):
    """List entities with a stored profile."""
    _, store = _open(args)
    entities = store.list_entities()
    if not entities:
        print("No stored profiles yet.")
        return
    for entity_id in entities:
        print(entity_id)


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Config is valid.")
        print(f"  Budget: {config.budget.max_chars:,} chars")
        print(f"  L1 threshold: {config.budget.base_l1_threshold} "
              f"[{config.budget.l1_floor}, {config.budget.l1_ceiling}]")
        print(f"  Max level: {config.compression.max_level}")
        if config.summarization.provider:
            print(f"  Summarizer: {config.summarization.provider} ({config.summarization.model or 'default model'})")
        else:
            print("  Summarizer: none (truncation summaries)")
        print(f"  Storage: {config.storage.root}")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="hierarchical-memory",
        description="Hierarchical memory compression and retrieval for dialogue",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--root", help="Profile directory (overrides storage.root)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show memory stats for an entity")
    stats_parser.add_argument("entity", help="Entity id")

    # search
    search_parser = subparsers.add_parser("search", help="Search an entity's memory")
    search_parser.add_argument("entity", help="Entity id")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", "-n", type=int, default=5, help="Max results")

    # context
    context_parser = subparsers.add_parser("context", help="Build a bounded context string")
    context_parser.add_argument("entity", help="Entity id")
    context_parser.add_argument("query", help="Query used to pick summaries")
    context_parser.add_argument("--max-chars", type=int, default=2000, help="Character budget")

    # ingest
    ingest_parser = subparsers.add_parser("ingest", help="Append JSONL messages and save")
    ingest_parser.add_argument("entity", help="Entity id")
    ingest_parser.add_argument("input", nargs="?", help="JSONL file of {role, text} (default: stdin)")
    ingest_parser.add_argument(
        "--observe-emotions", action="store_true",
        help="Update the emotional state from each ingested message",
    )

    # emotions
    emotions_parser = subparsers.add_parser("emotions", help="Show the emotional report")
    emotions_parser.add_argument("entity", help="Entity id")

    # export
    export_parser = subparsers.add_parser("export", help="Print the memory snapshot as JSON")
    export_parser.add_argument("entity", help="Entity id")

    # entities
    subparsers.add_parser("entities", help="List stored entities")

    # config validate
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "stats": cmd_stats,
        "search": cmd_search,
        "context": cmd_context,
        "ingest": cmd_ingest,
        "emotions": cmd_emotions,
        "export": cmd_export,
        "entities": cmd_entities,
    }

    try:
        if args.command == "config":
            if args.config_command == "validate":
                cmd_config_validate(args)
            else:
                config_parser.print_help()
        else:
            commands[args.command](args)
    except CorruptStateError as e:
        print(f"Stored profile is corrupt: {e}", file=sys.stderr)
        sys.exit(2)
    except HierarchicalMemoryError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
