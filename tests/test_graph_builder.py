"""
Tests for the repository graph builder.
"""

import json
from pathlib import Path

import pytest

from lockstep_sync.config import parse_config
from lockstep_sync.graph_builder import (
    build_graph,
    group_by_submodule,
    select_projects,
    shared_submodules,
    submodule_references,
    unique_submodules,
)
from lockstep_sync.models import ConfigurationError


def _settings(*projects):
    return parse_config(json.dumps({"projects": list(projects)}))


def _project(name, submodules, path=None):
    return {
        "name": name,
        "repositoryId": f"{name}-id",
        "path": path or f"/work/{name}",
        "baseBranch": "main",
        "submodules": [{"name": s, "baseBranch": "main"} for s in submodules],
    }


def test_two_projects_sharing_one_submodule():
    graph = build_graph(_settings(_project("A", ["S"]), _project("B", ["S"])))

    assert unique_submodules(graph) == ["S"]
    refs = submodule_references(graph)
    assert len(refs) == 2
    assert [r.project_name for r in refs] == ["A", "B"]
    assert shared_submodules(graph) == {"S": ["A", "B"]}


def test_declaration_order_and_paths():
    graph = build_graph(_settings(_project("A", ["z", "a", "m"])))

    node = graph[0]
    assert [s.name for s in node.submodules] == ["z", "a", "m"]
    assert node.submodules[0].path == Path("/work/A") / "z"
    assert node.submodules[0].relative_path == "z"
    assert node.repository.repository_id == "A-id"
    assert node.branch_state.branch_name == ""


def test_missing_paths_do_not_fail_graph_construction(tmp_path):
    graph = build_graph(_settings(_project("ghost", ["S"], path=str(tmp_path / "nowhere"))))
    assert graph[0].name == "ghost"


def test_custom_gitlink_path():
    data = _project("A", [])
    data["submodules"] = [{"name": "lib", "baseBranch": "main", "path": "vendor/lib"}]
    node = build_graph(_settings(data))[0]

    assert node.submodules[0].relative_path == "vendor/lib"
    assert node.submodules[0].path == Path("/work/A/vendor/lib")


def test_select_projects():
    graph = build_graph(_settings(_project("A", []), _project("B", []), _project("C", [])))

    assert [p.name for p in select_projects(graph, ["C", "A"])] == ["A", "C"]
    assert len(select_projects(graph, None)) == 3
    with pytest.raises(ConfigurationError):
        select_projects(graph, ["D"])


def test_selection_filters_references():
    graph = build_graph(_settings(_project("A", ["S", "T"]), _project("B", ["S"])))

    grouped = group_by_submodule(submodule_references(graph, {"A": ["T"]}))
    assert list(grouped) == ["T", "S"]
    assert [r.project_name for r in grouped["S"]] == ["B"]
