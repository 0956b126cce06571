"""
run.py

One-command runner for NodeMap.

Examples:
  nodemap map --artist "Boards of Canada" --depth 2 --limit 15
  nodemap map --artist https://www.last.fm/music/Burial
  nodemap serve --port 3001
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Tuple

import pandas as pd

from nodemap.builder import GraphBuilder, MAX_DEPTH, MAX_LIMIT, MIN_DEPTH, MIN_LIMIT
from nodemap.cache import TTLCache
from nodemap.config import Settings
from nodemap.errors import NodeMapError
from nodemap.export import graph_to_csv
from nodemap.gate import RateGate
from nodemap.lastfm import LastFmClient, parse_artist_input
from nodemap.models import Graph
from nodemap.visualize import get_output_dir, write_pyvis_html


def status(message: str) -> None:
    print(f"⏳ {message}")


def done(message: str) -> None:
    print(f"✅ {message}")


def limit_arg(value: str) -> int:
    n = int(value)
    if not MIN_LIMIT <= n <= MAX_LIMIT:
        raise argparse.ArgumentTypeError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}")
    return n


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NodeMap runner (similar-artist graphs from Last.fm)")
    sub = parser.add_subparsers(dest="command", required=True)

    map_cmd = sub.add_parser("map", help="Build a graph and write CSV + HTML outputs")
    map_cmd.add_argument("--artist", type=str, default=None, help="Artist name or Last.fm profile URL. Prompted if omitted.")
    map_cmd.add_argument("--depth", type=int, choices=range(MIN_DEPTH, MAX_DEPTH + 1), default=1)
    map_cmd.add_argument("--limit", type=limit_arg, default=25)
    map_cmd.add_argument("--out", type=str, default="outputs", help="Base output folder")
    map_cmd.add_argument("--no-html", action="store_true", help="Skip the interactive HTML view")

    serve_cmd = sub.add_parser("serve", help="Start the HTTP API")
    serve_cmd.add_argument("--host", type=str, default="0.0.0.0")
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.add_argument("--reload", action="store_true")

    return parser.parse_args(argv)


def prompt_for_artist() -> str:
    artist = input("Artist name or Last.fm URL: ").strip()
    if not artist:
        print("No artist provided. Exiting.")
        sys.exit(1)
    return artist


async def build_graph(settings: Settings, root_name: str, depth: int, limit: int) -> Graph:
    gate = RateGate.from_settings(settings)
    client = LastFmClient.from_settings(settings, gate=gate, cache=TTLCache(ttl_seconds=settings.cache_ttl))
    try:
        graph = await GraphBuilder(client).build(root_name, depth=depth, limit=limit)
    finally:
        await gate.aclose()
        await client.aclose()

    print(
        f"\n📊 Last.fm call stats: calls={gate.stats.dispatched}, "
        f"throttle_sleep={gate.stats.sleep_seconds:.1f}s, 429s={gate.stats.throttled}"
    )
    return graph


def graph_frames(graph: Graph) -> Tuple[pd.DataFrame, pd.DataFrame]:
    nodes_df = pd.DataFrame(
        [
            {
                "name": n.name,
                "hop": n.hop_level,
                "listeners": n.listeners,
                "playcount": n.playcount,
                "primary_genre": n.primary_genre,
                "tags": "|".join(n.tags),
                "size": round(n.size, 3),
                "url": n.url or "",
            }
            for n in graph.nodes
        ],
        columns=["name", "hop", "listeners", "playcount", "primary_genre", "tags", "size", "url"],
    )
    edges_df = pd.DataFrame(
        [{"id": e.id, "source": e.source, "target": e.target, "similarity": e.match} for e in graph.edges],
        columns=["id", "source", "target", "similarity"],
    )
    return nodes_df, edges_df


def write_outputs(graph: Graph, out_dir: str) -> dict:
    data_dir = os.path.join(out_dir, "data")
    os.makedirs(data_dir, exist_ok=True)

    nodes_df, edges_df = graph_frames(graph)
    paths = {
        "nodes": os.path.join(data_dir, "nodes.csv"),
        "edges": os.path.join(data_dir, "edges.csv"),
        "export": os.path.join(data_dir, "artist-network.csv"),
    }

    nodes_df.to_csv(paths["nodes"], index=False)
    edges_df.to_csv(paths["edges"], index=False)
    with open(paths["export"], "w", encoding="utf-8") as f:
        f.write(graph_to_csv(graph))

    return paths


def run_map(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    root_name = parse_artist_input(args.artist or prompt_for_artist())

    status(f'Building {args.depth}-hop graph for "{root_name}" (limit={args.limit})…')
    try:
        graph = asyncio.run(build_graph(settings, root_name, args.depth, args.limit))
    except NodeMapError as e:
        print(f"⚠️ {e.title}: {e.message}")
        return 1

    stats = graph.stats
    done(f"Graph built: nodes={stats.total_nodes}, edges={stats.total_edges}")

    out_dir = get_output_dir(stats.root_artist, base=args.out)
    paths = write_outputs(graph, out_dir)

    print("\nData outputs written:")
    for path in paths.values():
        print(f"- {path}")

    if not args.no_html:
        html_path = write_pyvis_html(graph, out_dir=out_dir)
        print("\nVisualization written:")
        print(f"- {html_path}")

    # Human-friendly top edges
    top = sorted((e for e in graph.edges if e.source == stats.root_artist), key=lambda e: e.match, reverse=True)
    if top:
        print("\nMost similar (to root):")
        for edge in top[:10]:
            print(f"- {edge.target}  {round(edge.match * 100)}%")

    print("\nDone.")
    return 0


def run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "nodemap.server:app",
        host=args.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)

    if args.command == "serve":
        return run_serve(args)
    return run_map(args)


if __name__ == "__main__":
    sys.exit(main())
