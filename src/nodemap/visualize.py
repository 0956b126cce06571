"""
visualize.py

Interactive HTML view of a built graph using PyVis.

Node size is the display size (log of listeners); the root is highlighted
and hop-2 artists get their own color. Edge width/opacity follow similarity.
"""

from __future__ import annotations

import html
import os
import re
from typing import Dict

import networkx as nx
from pyvis.network import Network

from nodemap.models import Graph

THEME = {
    "bg": "#121212",
    "text": "#FFFFFF",
    "root_node": "#D51007",  # Last.fm red
    "hop1_node": "#3FA9E6",
    "hop2_node": "#9B7BE0",
    "node_border": "#121212",
    "edge_rgb": (172, 173, 172),
}

HOP_COLORS = {0: THEME["root_node"], 1: THEME["hop1_node"], 2: THEME["hop2_node"]}


def slugify(text: str) -> str:
    """
    Turn a string into a filesystem-safe folder name.
    Example: "Boards of Canada" -> "boards_of_canada"
    Example: "Guns N' Roses" -> "guns_n_roses"
    """
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9]+", "_", text)  # non-alnum -> underscore
    text = re.sub(r"_+", "_", text)          # collapse multiple underscores
    return text.strip("_") or "artist"


def get_output_dir(root_name: str, base: str = "outputs") -> str:
    return os.path.join(base, slugify(root_name))


def edge_style(similarity: float) -> Dict[str, float]:
    """
    Map edge similarity (0..1) to styling.
    """
    s = max(0.0, min(1.0, float(similarity)))
    width = 1.0 + (s * 7.0)
    opacity = 0.2 + (s * 0.6)
    return {"width": width, "opacity": opacity}


def build_networkx_graph(graph: Graph) -> nx.DiGraph:
    """
    Directed graph keyed by artist name; each edge keeps its similarity as `weight`.
    """
    G = nx.DiGraph()

    for node in graph.nodes:
        G.add_node(
            node.name,
            name=node.name,
            listeners=node.listeners,
            playcount=node.playcount,
            genre=node.primary_genre,
            size=node.size,
            hop=node.hop_level,
            url=node.url or "",
        )

    for edge in graph.edges:
        G.add_edge(edge.source, edge.target, weight=float(edge.match), edge_id=edge.id)

    return G


def node_tooltip(attrs: dict) -> str:
    return (
        f"<b>{html.escape(str(attrs.get('name', '')))}</b><br>"
        f"Listeners: {int(attrs.get('listeners') or 0):,}<br>"
        f"Genre: {html.escape(str(attrs.get('genre') or 'unknown'))}"
    )


def write_pyvis_html(graph: Graph, out_dir: str, filename: str = "network.html") -> str:
    """
    Interactive HTML graph.
    """
    G = build_networkx_graph(graph)
    net = Network(height="800px", width="100%", bgcolor=THEME["bg"], font_color=THEME["text"], cdn_resources="remote")

    # Physics makes it readable; users can drag nodes around.
    net.force_atlas_2based()

    net.set_options("""
    var options = {
      "interaction": {
        "hover": true,
        "hideEdgesOnDrag": false,
        "hideNodesOnDrag": false
      },
      "physics": {
        "forceAtlas2Based": {
          "gravitationalConstant": -40,
          "centralGravity": 0.01,
          "springLength": 140,
          "springConstant": 0.06,
          "avoidOverlap": 0.0
        },
        "minVelocity": 0.5,
        "solver": "forceAtlas2Based"
      }
    }
    """)

    for node_id, attrs in G.nodes(data=True):
        color = HOP_COLORS.get(attrs.get("hop"), THEME["hop1_node"])
        net.add_node(
            node_id,
            label=attrs.get("name", node_id),
            title=node_tooltip(attrs),
            size=attrs.get("size", 20),
            color={
                "background": color,
                "border": THEME["node_border"],
                "highlight": {"background": color, "border": THEME["text"]},
                "hover": {"background": color, "border": THEME["text"]},
            },
            font={"color": THEME["text"], "size": 16, "face": "system-ui"},
        )

    for u, v, attrs in G.edges(data=True):
        weight = attrs.get("weight", 0.0)
        style = edge_style(weight)
        r, g, b = THEME["edge_rgb"]
        net.add_edge(
            u,
            v,
            value=weight,
            title=f"Similarity: {round(weight * 100)}%",
            width=style["width"],
            color=f"rgba({r}, {g}, {b}, {style['opacity']})",
        )

    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, filename)
    net.write_html(out_path)
    return out_path
