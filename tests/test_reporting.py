"""
Unit tests for graph table building and emission
"""

import json
import logging
import os

import numpy as np
import pandas as pd
import pytest

from mexgraph.aggregation import EdgeAggregator, NodeIndex
from mexgraph.exceptions import EmissionError
from mexgraph.reporting import (
    build_edge_table,
    build_node_table,
    emit_graph,
    write_run_summary,
    write_tables,
)
from mexgraph.text_processing import Tag, TagCategory

SMILE = Tag("😀", TagCategory.EMOJI)
HAPPY = Tag(":)", TagCategory.EMOTICON)
FUN = Tag("#fun", TagCategory.HASHTAG)
JOY = Tag("😂", TagCategory.EMOJI)


@pytest.fixture
def scenario_graph():
    """Node ids 😀=0, :)=1, #fun=2, 😂=3 with the scenario's four edges"""
    nodes = NodeIndex()
    nodes.observe_all([SMILE, SMILE, SMILE, HAPPY, FUN, SMILE, JOY, FUN])
    nodes.freeze()
    edges = EdgeAggregator()
    edges.observe_record([0, 1, 2])
    edges.observe_record([3, 2])
    return nodes, edges


def read_tsv(path):
    return pd.read_csv(path, sep="\t", keep_default_na=False)


class TestBuildNodeTable:
    """Tests for the node table"""

    def test_rows_sorted_by_weight_with_stable_ties(self, scenario_graph):
        """Test descending weight, ties in first-seen order, 1-based row ids"""
        node_df, _ = build_node_table(scenario_graph[0])

        assert list(node_df.columns) == ["row_id", "node_type", "text", "weight"]
        assert node_df["row_id"].tolist() == [1, 2, 3, 4]
        assert node_df["text"].tolist() == ["😀", "#fun", ":)", "😂"]
        assert node_df["node_type"].tolist() == ["Emoji", "Hashtag", "Emoticon", "Emoji"]
        assert node_df["weight"].tolist() == [4, 2, 1, 1]

    def test_row_of_maps_ids_to_rows(self, scenario_graph):
        """Test the internal id -> output row translation"""
        _, row_of = build_node_table(scenario_graph[0])
        assert row_of.tolist() == [1, 3, 2, 4]

    def test_removed_ids_have_no_row(self):
        """Test that ids dropped by retention translate to 0"""
        nodes = NodeIndex()
        nodes.observe_all([HAPPY, SMILE, SMILE])
        nodes.retain_min_count(2)
        node_df, row_of = build_node_table(nodes)

        assert len(node_df) == 1
        assert row_of.tolist() == [0, 1]

    def test_empty_index(self):
        """Test that an empty index gives an empty table"""
        node_df, row_of = build_node_table(NodeIndex())
        assert node_df.empty and len(row_of) == 0


class TestBuildEdgeTable:
    """Tests for the edge table"""

    def test_endpoints_translated_and_ordered(self, scenario_graph):
        """Test row-id endpoints with node_1 < node_2, sorted by weight then ids"""
        nodes, edges = scenario_graph
        _, row_of = build_node_table(nodes)
        edge_df = build_edge_table(edges, row_of)

        assert list(edge_df.itertuples(index=False, name=None)) == [
            (1, 2, 1), (1, 3, 1), (2, 3, 1), (2, 4, 1),
        ]

    def test_heavier_edges_first(self):
        """Test that weight dominates the ordering"""
        edges = EdgeAggregator()
        edges.update({(0, 1): 1, (1, 2): 5, (0, 2): 3})
        edge_df = build_edge_table(edges, np.array([1, 2, 3]))

        assert edge_df["weight"].tolist() == [5, 3, 1]
        assert list(edge_df.iloc[0][["node_1", "node_2"]]) == [2, 3]

    def test_swaps_when_row_order_differs_from_id_order(self):
        """Test that node_1 < node_2 holds after translation"""
        edges = EdgeAggregator()
        edges.observe_record([0, 1])
        edge_df = build_edge_table(edges, np.array([2, 1]))
        assert edge_df.iloc[0].tolist() == [1, 2, 1]

    def test_no_edges(self):
        """Test that an empty aggregator gives an empty typed table"""
        edge_df = build_edge_table(EdgeAggregator(), np.array([1]))
        assert edge_df.empty
        assert list(edge_df.columns) == ["node_1", "node_2", "weight"]

    def test_dangling_endpoint(self):
        """Test that an edge to a node without a row is an emission error"""
        edges = EdgeAggregator()
        edges.observe_record([0, 1])
        with pytest.raises(EmissionError):
            build_edge_table(edges, np.array([1, 0]))


class TestWriteTables:
    """Tests for atomic TSV output"""

    def test_writes_both_tables(self, scenario_graph, temp_dir):
        """Test that nodes.tsv and edges.tsv are written with headers"""
        out = os.path.join(temp_dir, 'graph')
        outputs = emit_graph(*scenario_graph, out)

        nodes = read_tsv(outputs["nodes"])
        edges = read_tsv(outputs["edges"])
        assert nodes["text"].tolist() == ["😀", "#fun", ":)", "😂"]
        assert edges[["node_1", "node_2"]].values.tolist() == [[1, 2], [1, 3], [2, 3], [2, 4]]
        assert sorted(os.listdir(out)) == ["edges.tsv", "nodes.tsv"]

    def test_every_edge_endpoint_is_a_node_row(self, scenario_graph, temp_dir):
        """Test referential integrity of the written tables"""
        outputs = emit_graph(*scenario_graph, temp_dir)
        rows = set(read_tsv(outputs["nodes"])["row_id"])
        edges = read_tsv(outputs["edges"])

        assert set(edges["node_1"]) | set(edges["node_2"]) <= rows
        assert (edges["node_1"] < edges["node_2"]).all()

    def test_output_dir_is_a_file(self, scenario_graph, temp_dir):
        """Test that an unusable output location raises EmissionError"""
        blocker = os.path.join(temp_dir, 'blocker')
        open(blocker, 'w').close()

        with pytest.raises(EmissionError):
            emit_graph(*scenario_graph, blocker)

    def test_failed_move_leaves_nothing_behind(self, scenario_graph, temp_dir, monkeypatch):
        """Test that neither table nor any temp file survives a failed write"""
        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("mexgraph.reporting.os.replace", fail_replace)
        node_df, row_of = build_node_table(scenario_graph[0])
        edge_df = build_edge_table(scenario_graph[1], row_of)

        with pytest.raises(EmissionError, match="disk full"):
            write_tables(node_df, edge_df, temp_dir)
        assert os.listdir(temp_dir) == []

    @pytest.mark.parametrize("failing_call", [1, 2, 3, 4])
    def test_failed_move_keeps_previous_tables_together(self, scenario_graph, temp_dir,
                                                        monkeypatch, failing_call):
        """Test that a failure at any move leaves the earlier run's pair of tables intact"""
        for filename in ("nodes.tsv", "edges.tsv"):
            with open(os.path.join(temp_dir, filename), 'w', encoding='utf-8') as f:
                f.write(f"OLD {filename}\n")

        real_replace = os.replace
        calls = []

        def flaky_replace(src, dst):
            calls.append((src, dst))
            if len(calls) == failing_call:
                raise OSError("disk full")
            real_replace(src, dst)

        monkeypatch.setattr("mexgraph.reporting.os.replace", flaky_replace)
        node_df, row_of = build_node_table(scenario_graph[0])
        edge_df = build_edge_table(scenario_graph[1], row_of)

        with pytest.raises(EmissionError):
            write_tables(node_df, edge_df, temp_dir)

        assert sorted(os.listdir(temp_dir)) == ["edges.tsv", "nodes.tsv"]
        for filename in ("nodes.tsv", "edges.tsv"):
            with open(os.path.join(temp_dir, filename), encoding='utf-8') as f:
                assert f.read() == f"OLD {filename}\n"

    def test_failed_edge_move_removes_new_node_table(self, scenario_graph, temp_dir, monkeypatch):
        """Test that a node table is not left alone when the edge table cannot be placed"""
        real_replace = os.replace

        def refuse_edges(src, dst):
            if os.path.basename(dst) == "edges.tsv":
                raise OSError("read-only")
            real_replace(src, dst)

        monkeypatch.setattr("mexgraph.reporting.os.replace", refuse_edges)
        node_df, row_of = build_node_table(scenario_graph[0])
        edge_df = build_edge_table(scenario_graph[1], row_of)

        with pytest.raises(EmissionError):
            write_tables(node_df, edge_df, temp_dir)
        assert os.listdir(temp_dir) == []

    def test_rewrite_replaces_previous_tables(self, scenario_graph, temp_dir):
        """Test that a second run overwrites both tables and leaves no backups"""
        for filename in ("nodes.tsv", "edges.tsv"):
            with open(os.path.join(temp_dir, filename), 'w', encoding='utf-8') as f:
                f.write("OLD\n")

        outputs = emit_graph(*scenario_graph, temp_dir)

        assert sorted(os.listdir(temp_dir)) == ["edges.tsv", "nodes.tsv"]
        assert read_tsv(outputs["nodes"])["text"].tolist() == ["😀", "#fun", ":)", "😂"]
        assert len(read_tsv(outputs["edges"])) == 4

    def test_awkward_tag_text_reads_back_unchanged(self, temp_dir):
        """Test that quotes and tabs inside tags survive a tab-separated round trip"""
        nodes = NodeIndex()
        nodes.observe_all([Tag(':"(', TagCategory.EMOTICON), Tag("#a\tb", TagCategory.HASHTAG)])
        outputs = emit_graph(nodes.freeze(), EdgeAggregator(), temp_dir)

        assert read_tsv(outputs["nodes"])["text"].tolist() == [':"(', "#a\tb"]
        with open(outputs["nodes"], encoding='utf-8') as f:
            assert f.read().splitlines()[1] == '1\tEmoticon\t":""("\t1'


class TestRunSummary:
    """Tests for the JSON run summary"""

    def test_summary_written(self, temp_dir):
        """Test summary contents and metadata"""
        path = write_run_summary({"nodes": {"retained": 4}}, temp_dir)

        with open(path, encoding='utf-8') as f:
            report = json.load(f)
        assert report["report_type"] == "meta_expression_graph"
        assert report["nodes"] == {"retained": 4}
        assert "generated_timestamp" in report

    def test_summary_failure_is_not_fatal(self, temp_dir, caplog):
        """Test that a summary write failure is logged and returns None"""
        missing = os.path.join(temp_dir, 'missing', 'dir')
        with caplog.at_level(logging.ERROR, logger="mexgraph.reporting"):
            assert write_run_summary({}, missing) is None
        assert "Failed to write run summary" in caplog.text
