"""chartsmith CLI interface.

Commands:
- render: Render a JSON/YAML data file through a template and theme
- validate: Check a template (and optionally a data file against it)
- templates: List registered templates
- themes: List registered themes
- init: Write a default configuration file

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log lines
- --version: Show version and exit
"""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml

from chartsmith import __version__
from chartsmith.config import (
    QUALITY_LEVELS,
    ChartsmithConfig,
    create_default_config,
    load_config,
)
from chartsmith.errors import ChartsmithError, RegistrationError
from chartsmith.models.render import ChartOptions
from chartsmith.pipeline import ChartPipeline
from chartsmith.templates.registry import TemplateRegistry
from chartsmith.utils.logging import configure_from_cli, get_logger

app = typer.Typer(
    name="chartsmith",
    help="Render structured data into markup through templates and themes",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: ChartsmithConfig | None = None
_logger = get_logger()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"chartsmith {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """chartsmith - template-driven chart rendering with incremental updates."""
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except Exception as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)


def _current_config() -> ChartsmithConfig:
    return _config or ChartsmithConfig()


def _load_data_file(path: Path) -> dict[str, Any]:
    """Load a data tree from a .json, .yaml or .yml file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


# =============================================================================
# render command
# =============================================================================


@app.command()
def render(
    data_file: Annotated[
        Path,
        typer.Argument(
            help="JSON or YAML data file",
            exists=True,
            dir_okay=False,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output file (default: stdout)",
        ),
    ] = None,
    template: Annotated[
        str | None,
        typer.Option(
            "--template",
            "-t",
            help="Template id (default: render.default_template)",
        ),
    ] = None,
    theme: Annotated[
        str | None,
        typer.Option(
            "--theme",
            help="Theme id (default: render.default_theme)",
        ),
    ] = None,
    width: Annotated[
        int | None,
        typer.Option(
            "--width",
            min=1,
            help="Document width",
        ),
    ] = None,
    height: Annotated[
        int | None,
        typer.Option(
            "--height",
            min=1,
            help="Document height",
        ),
    ] = None,
    quality: Annotated[
        str | None,
        typer.Option(
            "--quality",
            help="Numeric precision: low, medium or high",
        ),
    ] = None,
    optimize: Annotated[
        bool | None,
        typer.Option(
            "--optimize/--no-optimize",
            help="Drop unreferenced <defs> and duplicate <style> blocks (default: render.optimize)",
        ),
    ] = None,
    animations: Annotated[
        bool | None,
        typer.Option(
            "--animations/--no-animations",
            help="Add a fade-in style block (default: render.animations)",
        ),
    ] = None,
    interactive: Annotated[
        bool | None,
        typer.Option(
            "--interactive/--no-interactive",
            help="Add hover styles (default: render.interactivity)",
        ),
    ] = None,
    show_metadata: Annotated[
        bool,
        typer.Option(
            "--metadata",
            help="Print render metadata as JSON to stderr",
        ),
    ] = False,
) -> None:
    """Render a data file to markup."""
    if quality is not None and quality not in QUALITY_LEVELS:
        _logger.error(f"Invalid quality: {quality}. Valid: {', '.join(QUALITY_LEVELS)}")
        raise typer.Exit(1)

    try:
        data = _load_data_file(data_file)
    except (ValueError, yaml.YAMLError) as e:
        _logger.error(f"Could not read data: {e}")
        raise typer.Exit(1)

    try:
        pipeline = ChartPipeline(config=_current_config())
        result = pipeline.generate_chart(
            data,
            ChartOptions(
                template_id=template,
                theme_id=theme,
                width=width,
                height=height,
                quality=quality,
                optimize=optimize,
                animations=animations,
                interactivity=interactive,
            ),
        )
    except ChartsmithError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if result.metadata.missing_variables:
        _logger.warning(f"Missing variables: {', '.join(result.metadata.missing_variables)}")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.output + "\n", encoding="utf-8")
        _logger.info(f"Wrote {output} ({len(result.output)} bytes)")
    else:
        typer.echo(result.output)

    if show_metadata:
        typer.echo(json.dumps(result.metadata.to_dict(), indent=2), err=True)


# =============================================================================
# validate command
# =============================================================================


@app.command()
def validate(
    template: Annotated[
        str,
        typer.Argument(
            help="Registered template id, or path to a YAML template file",
        ),
    ],
    data_file: Annotated[
        Path | None,
        typer.Option(
            "--data",
            "-d",
            help="Data file to check against the template's declared variables",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Validate a template.

    Checks block balance and partial references, and reports declared
    variables a data file does not provide.
    """
    config = _current_config()
    registry = TemplateRegistry(minify=config.render.minify)
    for directory in config.paths.templates:
        registry.load_directory(Path(directory))

    path = Path(template)
    try:
        if path.is_file():
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
            if not isinstance(document, dict):
                _logger.error(f"{path} must contain a mapping")
                raise typer.Exit(1)
            for name, body in (document.pop("global_partials", None) or {}).items():
                registry.register_partial(name, body)
            template_id = str(document.get("id") or path.stem)
            registry.register(template_id, document)
        else:
            template_id = template
            registry.compile(template_id)
    except RegistrationError as e:
        typer.echo(f"❌ Template is invalid: {e.subject}")
        for error in e.errors:
            typer.echo(f"   • {error}")
        raise typer.Exit(1)
    except ChartsmithError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except yaml.YAMLError as e:
        _logger.error(f"Could not parse {path}: {e}")
        raise typer.Exit(1)

    typer.echo(f"✅ Template is valid: {template_id}")

    if data_file is None:
        return

    try:
        data = _load_data_file(data_file)
    except (ValueError, yaml.YAMLError) as e:
        _logger.error(f"Could not read data: {e}")
        raise typer.Exit(1)

    result = registry.validate(template_id, data)
    if result.valid:
        typer.echo(f"✅ {data_file} provides every declared variable")
    else:
        typer.echo(f"❌ {data_file} is missing {len(result.missing)} variable(s)")
        for variable in result.missing:
            typer.echo(f"   • {variable}")
        raise typer.Exit(1)


# =============================================================================
# templates / themes commands
# =============================================================================


@app.command()
def templates(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON",
        ),
    ] = False,
) -> None:
    """List registered templates."""
    pipeline = ChartPipeline(config=_current_config())
    listing = pipeline.templates.list_templates()

    if json_output:
        typer.echo(json.dumps(listing, indent=2, default=str))
        return
    for item in listing:
        typer.echo(f"  {item['id']:<20} {item['category']:<12} {item['name']}")


@app.command()
def themes(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON",
        ),
    ] = False,
) -> None:
    """List registered themes; the active one is marked with *."""
    pipeline = ChartPipeline(config=_current_config())
    listing = pipeline.themes.list_themes()

    if json_output:
        typer.echo(json.dumps(listing, indent=2, default=str))
        return
    for item in listing:
        marker = "*" if item.get("active") else " "
        typer.echo(f"{marker} {item['id']:<20} {item['category']:<12} {item['name']}")


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite existing config",
        ),
    ] = False,
) -> None:
    """Initialize chartsmith configuration.

    Creates .chartsmith/config.yaml plus templates/ and themes/ directories.
    """
    chartsmith_dir = Path(".chartsmith")
    chartsmith_dir.mkdir(exist_ok=True)
    (chartsmith_dir / "templates").mkdir(exist_ok=True)
    (chartsmith_dir / "themes").mkdir(exist_ok=True)

    config_file = chartsmith_dir / "config.yaml"
    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_file.write_text(create_default_config(), encoding="utf-8")
    typer.echo(f"✅ Created {config_file}")


if __name__ == "__main__":
    app()
