import logging
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich import print as rprint
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .catalog import operators
from .config import load_settings
from .graphs import generate_graph_from_template, load_graph, save_graph_yaml, template_names
from .literals import flatten_paths
from .scope import select_roots
from .session import EditorSession
from .validator import validate_graph_from_file
from .visualize import ascii_plan

app = typer.Typer(no_args_is_help=True, help="nodes2py CLI: node graphs -> previews and Python code")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs.")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )
    if verbose:
        logging.getLogger("nodes2py").setLevel(logging.DEBUG)


def _settings(config: Optional[Path]):
    settings = load_settings(config)
    log = logging.getLogger("nodes2py")
    if log.level == logging.NOTSET:
        log.setLevel(settings.log_level.upper())
    return settings


def _load_record(path: Optional[Path]) -> Optional[Any]:
    if path is None:
        return None
    return yaml.safe_load(path.read_text())


@app.command()
def init():
    """Create a local project layout (graphs/, records/, build/)."""
    for name in ["graphs", "records", "build"]:
        Path(name).mkdir(exist_ok=True)
    rprint(Panel.fit("[bold green]Initialized[/] directories: graphs/, records/, build/"))


@app.command()
def template(name: str = typer.Option(..., help=f"Template to use: {' | '.join(template_names())}"),
             out_name: Optional[str] = typer.Option(None, help="Output filename (without .yaml)"),
             outdir: Path = typer.Option(Path("graphs"), help="Where to place the YAML"),
    ):
    """Write one of the bundled example graphs as YAML."""
    try:
        graph = generate_graph_from_template(name)
    except ValueError as e:
        rprint(f"[red]{e}[/]")
        raise typer.Exit(code=1)
    outdir.mkdir(exist_ok=True, parents=True)
    outfile = outdir / f"{out_name or name}.yaml"
    save_graph_yaml(graph, outfile)
    rprint(Panel.fit(f"Saved template [bold]{name}[/] to [cyan]{outfile}[/]"))


@app.command()
def validate(file: Path):
    """Validate a graph file (ids, edges, ports, dtypes, cycles)."""
    ok, messages = validate_graph_from_file(file)
    table = Table(title="Validation Report", show_lines=True)
    table.add_column("Status", justify="center", style="bold")
    table.add_column("Message")
    for m in messages:
        status = m.split(":", 1)[0]
        table.add_row(status, m)
    rprint(table)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def explain(file: Path):
    """Print an ASCII plan of the graph."""
    print(ascii_plan(file))


@app.command()
def run(file: Path,
        record: Optional[Path] = typer.Option(None, help="JSON/YAML record to evaluate against."),
        config: Optional[Path] = typer.Option(None, help="Settings YAML (sample record, loop cap)."),
        all_nodes: bool = typer.Option(False, "--all", help="Show every node, not only the results.")):
    """Preview a graph against one record."""
    settings = _settings(config)
    graph = load_graph(file)
    row = _load_record(record)
    if row is None:
        row = settings.sample_record
    values = EditorSession(graph, settings).values(row)

    table = Table(title="Preview", show_lines=True)
    if all_nodes:
        table.add_column("Node", style="bold")
        table.add_column("Value")
        for n in graph.nodes:
            table.add_row(n.id, repr(values.get(n.id)))
    else:
        table.add_column("Result", style="bold")
        table.add_column("Value")
        for root in select_roots(graph.index()):
            table.add_row(root.label, repr(values.get(root.node_id)))
    rprint(table)


@app.command("compile")
def compile_graph(file: Path,
                  out: Optional[Path] = typer.Option(None, help="Write the Python module here."),
                  config: Optional[Path] = typer.Option(None, help="Settings YAML (loop cap).")):
    """Generate a Python compute(row) function from a graph."""
    graph = load_graph(file)
    code = EditorSession(graph, _settings(config)).python()
    if out is None:
        rprint(Syntax(code, "python"))
        return
    out.parent.mkdir(exist_ok=True, parents=True)
    out.write_text(code)
    rprint(Panel.fit(f"Wrote [cyan]{out}[/]"))


@app.command()
def ops():
    """List the operator catalog."""
    table = Table(title="Operators")
    table.add_column("Id", style="bold")
    table.add_column("Label")
    table.add_column("Inputs")
    table.add_column("Output")
    table.add_column("Help")
    for spec in operators():
        inputs = ", ".join(f"{p.id}:{p.dtype}" for p in spec.inputs)
        outputs = ", ".join(f"{p.id}:{p.dtype}" for p in spec.outputs)
        table.add_row(spec.id, spec.label, inputs, outputs, spec.help)
    rprint(table)


@app.command()
def fields(record: Optional[Path] = typer.Option(None, help="JSON/YAML record; defaults to the sample record."),
           config: Optional[Path] = typer.Option(None, help="Settings YAML.")):
    """List the field paths a record offers, with their inferred dtypes."""
    row = _load_record(record)
    if row is None:
        row = _settings(config).sample_record
    table = Table(title="Fields")
    table.add_column("Path", style="bold")
    table.add_column("Type")
    for path, dtype in flatten_paths(row):
        table.add_row(path, dtype)
    rprint(table)


if __name__ == "__main__":
    app()
