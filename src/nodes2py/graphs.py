from importlib.resources import files
from pathlib import Path
from typing import List
import yaml
from .ir import Graph

TEMPLATES = ("order_total", "list_stats", "countdown")


def _load_template_yaml(name: str) -> str:
    pkg = files('nodes2py.templates')
    return (pkg / f"{name}.yaml").read_text()


def template_names() -> List[str]:
    return list(TEMPLATES)


def generate_graph_from_template(name: str) -> Graph:
    name = name.lower().replace('-', '_')
    if name not in TEMPLATES:
        raise ValueError(f"Unknown template '{name}'. Use one of: {', '.join(TEMPLATES)}")
    data = yaml.safe_load(_load_template_yaml(name))
    return Graph(**data)


def load_graph(path: Path) -> Graph:
    """Read a graph saved as YAML or as the editor's JSON export."""
    data = yaml.safe_load(Path(path).read_text()) or {}
    return Graph(**data)


def save_graph_yaml(graph: Graph, path: Path):
    data = graph.model_dump(by_alias=True, exclude_none=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False))
