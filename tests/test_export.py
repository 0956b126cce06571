import csv
import io

import pytest

from nodemap.errors import InvalidInput, NoRootFound
from nodemap.export import (
    CSV_COLUMNS,
    export_filename,
    format_count,
    format_percent,
    graph_from_payload,
    graph_to_csv,
    orbit_label,
)
from nodemap.models import Graph, GraphEdge, GraphNode


def node(name, hop, is_root=False, listeners=0, playcount=0, tags=None, url=None):
    return GraphNode(
        name=name,
        listeners=listeners,
        playcount=playcount,
        tags=tags or [],
        primary_genre=(tags or ["unknown"])[0],
        size=20.0,
        is_root=is_root,
        hop_level=hop,
        url=url,
    )


def rows(text):
    return list(csv.reader(io.StringIO(text)))


def test_single_root_graph_exports_one_row():
    graph = Graph(nodes=[node("Burial", 0, is_root=True, listeners=1234567, playcount=98765432)], edges=[])
    table = rows(graph_to_csv(graph))

    assert table[0] == CSV_COLUMNS
    assert table[1] == ["Burial", "Root", "1,234,567", "98,765,432", "", "100%", ""]
    assert len(table) == 2


def test_every_field_is_quoted():
    graph = Graph(nodes=[node("Burial", 0, is_root=True)], edges=[])
    lines = graph_to_csv(graph).splitlines()

    assert lines[0].startswith('"Artist Name","Orbit"')
    assert lines[1] == '"Burial","Root","0","0","","100%",""'


def test_similarity_comes_from_edges_touching_root():
    graph = Graph(
        nodes=[
            node("Root", 0, is_root=True),
            node("A", 1, tags=["idm", "ambient"], url="https://www.last.fm/music/A"),
            node("B", 2),
            node("C", 2),
            node("D", 1),
        ],
        edges=[
            GraphEdge(id="Root->A", source="Root", target="A", match=0.875),
            GraphEdge(id="A->B", source="A", target="B", match=0.9),
            GraphEdge(id="Root->B_root", source="Root", target="B", match=0.5),
            GraphEdge(id="A->C", source="A", target="C", match=0.4),
            GraphEdge(id="D->Root", source="D", target="Root", match=0.125),
        ],
    )
    table = {r[0]: r for r in rows(graph_to_csv(graph))[1:]}

    assert table["A"][1:] == ["1st Hop", "0", "0", "idm, ambient", "88%", "https://www.last.fm/music/A"]
    assert table["B"][1] == "2nd Hop"
    assert table["B"][5] == "50%"
    # no root edge at all
    assert table["C"][5] == "0%"
    # reverse direction counts too
    assert table["D"][5] == "13%"


def test_csv_escapes_quotes_and_commas():
    graph = Graph(nodes=[node('Say "Hi", Folks', 0, is_root=True)], edges=[])
    table = rows(graph_to_csv(graph))

    assert table[1][0] == 'Say "Hi", Folks'


def test_graph_without_root_is_rejected():
    graph = Graph(nodes=[node("A", 1)], edges=[])

    with pytest.raises(NoRootFound) as exc:
        graph_to_csv(graph)
    assert exc.value.message == "No root artist found in graph data"
    assert exc.value.status_code == 400


@pytest.mark.parametrize("hop,label", [(0, "Root"), (1, "1st Hop"), (2, "2nd Hop"), (3, "Unknown"), (None, "Unknown")])
def test_orbit_label(hop, label):
    assert orbit_label(hop) == label


@pytest.mark.parametrize(
    "value,text",
    [(0, "0"), (None, "0"), (-3, "0"), ("abc", "0"), (999, "999"), (1000, "1,000"), (1234.9, "1,234")],
)
def test_format_count(value, text):
    assert format_count(value) == text


@pytest.mark.parametrize("value,text", [(1.0, "100%"), (0.0, "0%"), (0.125, "13%"), (0.994, "99%"), (0.5, "50%")])
def test_format_percent(value, text):
    assert format_percent(value) == text


def test_export_filename():
    assert export_filename() == "artist-network-export.csv"
    assert export_filename("Boards of Canada") == "artist-network-Boards-of-Canada.csv"
    assert export_filename("Sigur Rós") == "artist-network-Sigur-R-s.csv"


# ----------------------------
# Client-supplied graphs
# ----------------------------

def test_graph_from_camel_case_payload():
    graph = graph_from_payload(
        nodes=[
            {"id": "Root", "name": "Root", "isRoot": True, "hopLevel": 0, "listeners": 10, "playcount": 20},
            {"id": "A", "name": "A", "isRoot": False, "hopLevel": 1, "tags": ["idm"], "primaryGenre": "idm"},
        ],
        edges=[{"id": "Root->A", "source": "Root", "target": "A", "weight": 0.6}],
    )

    assert graph.root.name == "Root"
    assert graph.nodes[1].primary_genre == "idm"
    assert graph.edges[0].match == 0.6
    assert rows(graph_to_csv(graph))[2][5] == "60%"


def test_graph_from_payload_defaults():
    graph = graph_from_payload(
        nodes=[{"name": "Root", "is_root": True}, {"name": "Lost"}],
        edges=[{"source": "Root", "target": "Lost", "match": 0.3}],
    )

    assert graph.nodes[0].hop_level == 0
    assert graph.nodes[1].hop_level == -1
    assert graph.edges[0].id == "Root->Lost"
    assert rows(graph_to_csv(graph))[2][1] == "Unknown"


@pytest.mark.parametrize(
    "nodes,edges",
    [
        ([{"isRoot": True}], []),
        ([{"name": "Root", "isRoot": True}], [{"source": "Root"}]),
        ([{"name": "Root", "isRoot": True, "listeners": "many"}], []),
    ],
)
def test_malformed_payload(nodes, edges):
    with pytest.raises(InvalidInput):
        graph_from_payload(nodes, edges)
