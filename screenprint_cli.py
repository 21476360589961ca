#!/usr/bin/env python3
"""
CLI module for the screen-print renderer - Command-Line Interface

Renders images (or whole folders of images) as layered screen prints from a
JSON job file. Uses Rich for terminal output.
"""

import sys
import logging
import argparse
import json
import copy
from dataclasses import replace
from pathlib import Path
from typing import Optional, List, Dict, Any

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.panel import Panel

from blending import BlendMode
from config_manager import ConfigManager
from dithering_lib import ALGORITHMS, DitherMode
from layer_stack import InkBleedSettings, MAX_LAYERS
from palette import DEFAULT_PALETTE, PaletteEntry, hex_to_rgb
from pipeline import RenderParams, render
from presets import PRESETS, gradient_from_dict, layer_from_dict, params_from_preset, preset_from_params
from utils import (EXPORT_SCALES, IMAGE_EXTENSIONS, get_image_info, load_image_buffer, load_palette_file,
                   save_buffer, validate_image_file)


console = Console()

logger = logging.getLogger('screenprint')


def setup_logging(verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None):
    """
    Setup logging with Rich handler for terminal output.

    Args:
        verbose: Enable verbose (DEBUG) logging
        quiet: Suppress all but ERROR messages
        log_file: Optional path to log file
    """
    global logger

    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handlers = []

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True
    )
    handlers.append(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers
    )

    logger = logging.getLogger('screenprint')
    logger.setLevel(level)

    return logger


# ==================== Config Schema & Validation ====================

VALID_MODES = ["image", "folder"]
VALID_DITHER_TYPES = [mode.value for mode in DitherMode]
VALID_BLEND_MODES = [mode.value for mode in BlendMode]


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _check_number(errors: List[str], section: Dict[str, Any], key: str, label: str,
                  low: Optional[float] = None, high: Optional[float] = None):
    if key not in section:
        return
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"'{label}' must be a number")
        return
    if (low is not None and value < low) or (high is not None and value > high):
        errors.append(f"'{label}' must be between {low} and {high}")


def _check_dither_type(errors: List[str], value: Any, label: str):
    if DitherMode.parse(value).value == "none" and str(value).lower() != "none":
        errors.append(f"Invalid dither type in {label}: '{value}'. Must be one of: {VALID_DITHER_TYPES}")


def _validate_layers(errors: List[str], layers: Any):
    if not isinstance(layers, list):
        errors.append("'layers' must be a list")
        return
    if not 1 <= len(layers) <= MAX_LAYERS:
        errors.append(f"'layers' must contain between 1 and {MAX_LAYERS} layers, got {len(layers)}")
    for i, layer in enumerate(layers):
        label = f"layers[{i}]"
        if not isinstance(layer, dict):
            errors.append(f"'{label}' must be an object/dictionary")
            continue
        if "dither_type" in layer:
            _check_dither_type(errors, layer["dither_type"], label)
        if "blend_mode" in layer and str(layer["blend_mode"]).lower() not in VALID_BLEND_MODES:
            errors.append(f"Invalid blend mode in {label}: '{layer['blend_mode']}'. "
                          f"Must be one of: {VALID_BLEND_MODES}")
        _check_number(errors, layer, "threshold", f"{label}.threshold", 0, 1)
        _check_number(errors, layer, "opacity", f"{label}.opacity", 0, 1)
        _check_number(errors, layer, "scale", f"{label}.scale", 2, 32)
        _check_number(errors, layer, "angle", f"{label}.angle", 0, 180)
        _check_number(errors, layer, "offset_x", f"{label}.offset_x", -50, 50)
        _check_number(errors, layer, "offset_y", f"{label}.offset_y", -50, 50)


def _validate_gradient(errors: List[str], gradient: Any):
    if not isinstance(gradient, dict):
        errors.append("'gradient' must be an object/dictionary")
        return
    stops = gradient.get("stops")
    if not isinstance(stops, list) or len(stops) < 2:
        errors.append("'gradient.stops' must be a list of at least 2 palette colors")
    elif len(stops) > 4:
        errors.append(f"'gradient.stops' supports at most 4 colors, got {len(stops)}")
    if "dither_type" in gradient:
        _check_dither_type(errors, gradient["dither_type"], "gradient")
    _check_number(errors, gradient, "threshold", "gradient.threshold", 0, 1)
    _check_number(errors, gradient, "scale", "gradient.scale", 2, 32)
    _check_number(errors, gradient, "angle", "gradient.angle", 0, 180)


def _resolve_path(value: str, config_dir: Path) -> str:
    path = Path(value)
    if not path.is_absolute():
        path = (config_dir / path).resolve()
    return str(path)


def _apply_defaults(config: Dict[str, Any], defaults: Dict[str, Any]):
    """Fill keys the job leaves out from the user's stored defaults, one level deep."""
    for key, value in defaults.items():
        if value is None:
            continue
        if key not in config:
            config[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(config[key], dict):
            for sub_key, sub_value in value.items():
                config[key].setdefault(sub_key, sub_value)


def validate_config(config: Dict[str, Any], config_path: Path,
                    custom_presets: Optional[Dict[str, Dict]] = None,
                    defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Validate configuration and return normalized config.

    Args:
        config: Raw config dictionary
        config_path: Path to config file (for resolving relative paths)
        custom_presets: User presets that a "preset" entry may also name
        defaults: Stored user defaults (ConfigManager.job_defaults) for
            anything the job leaves out; checked like the job's own values

    Returns:
        Validated and normalized config

    Raises:
        ConfigValidationError: If validation fails
    """
    if defaults:
        _apply_defaults(config, defaults)

    errors = []

    if "input" not in config:
        errors.append("Missing required field: 'input'")

    if "output" not in config:
        errors.append("Missing required field: 'output'")

    mode = config.get("mode")
    if mode and mode not in VALID_MODES:
        errors.append(f"Invalid mode: '{mode}'. Must be one of: {VALID_MODES}")

    preset = config.get("preset")
    if preset is not None:
        known = list(PRESETS) + list(custom_presets or {})
        if preset not in known:
            errors.append(f"Unknown preset: '{preset}'. Must be one of: {known}")

    if "layers" in config:
        _validate_layers(errors, config["layers"])

    if "gradient" in config and config["gradient"] is not None:
        _validate_gradient(errors, config["gradient"])

    if "adjustments" in config:
        adj = config["adjustments"]
        if not isinstance(adj, dict):
            errors.append("'adjustments' must be an object/dictionary")
        else:
            _check_number(errors, adj, "brightness", "adjustments.brightness", -0.5, 0.5)
            _check_number(errors, adj, "contrast", "adjustments.contrast", -0.5, 0.5)
            _check_number(errors, adj, "image_scale", "adjustments.image_scale", 0.5, 2.0)

    if "ink_bleed" in config:
        bleed = config["ink_bleed"]
        if not isinstance(bleed, dict):
            errors.append("'ink_bleed' must be an object/dictionary")
        else:
            _check_number(errors, bleed, "amount", "ink_bleed.amount", 0, 1)
            _check_number(errors, bleed, "roughness", "ink_bleed.roughness", 0, 1)

    if "background" in config:
        try:
            hex_to_rgb(config["background"])
        except (ValueError, AttributeError, TypeError):
            errors.append(f"Invalid background color: '{config['background']}'")

    seed = config.get("seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        errors.append("'seed' must be an integer")

    if "export" in config:
        export = config["export"]
        if not isinstance(export, dict):
            errors.append("'export' must be an object/dictionary")
        elif "scale" in export and export["scale"] not in EXPORT_SCALES:
            errors.append(f"'export.scale' must be one of: {list(EXPORT_SCALES)}")

    if "workers" in config:
        workers = config["workers"]
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            errors.append("'workers' must be a positive integer")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  • {e}" for e in errors)
        raise ConfigValidationError(error_msg)

    # Paths are relative to the config file
    config_dir = config_path.parent
    config["input"] = _resolve_path(config["input"], config_dir)
    config["output"] = _resolve_path(config["output"], config_dir)
    if config.get("palette"):
        config["palette"] = _resolve_path(config["palette"], config_dir)

    if not Path(config["input"]).exists():
        raise ConfigValidationError(f"Input file/directory not found: {config['input']}")

    config.setdefault("mode", None)  # Will be auto-detected
    config.setdefault("preset", None)
    config.setdefault("palette", None)
    config.setdefault("gradient", None)
    config.setdefault("adjustments", {})
    config.setdefault("ink_bleed", {})
    config.setdefault("background", "#ffffff")
    config.setdefault("seed", None)
    config.setdefault("export", {})
    config.setdefault("workers", 1)

    config["adjustments"].setdefault("brightness", 0.0)
    config["adjustments"].setdefault("contrast", 0.0)
    config["adjustments"].setdefault("invert", False)
    config["adjustments"].setdefault("image_scale", 1.0)

    config["ink_bleed"].setdefault("enabled", False)
    config["ink_bleed"].setdefault("amount", 0.5)
    config["ink_bleed"].setdefault("roughness", 0.5)

    config["export"].setdefault("scale", 1)

    return config


def load_config(config_path: Path, custom_presets: Optional[Dict[str, Dict]] = None,
                defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load and validate configuration from JSON file.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Invalid JSON in config file:\n  Line {e.lineno}: {e.msg}")
    except OSError as e:
        raise ConfigValidationError(f"Failed to load config file: {e}")

    if not isinstance(config, dict):
        raise ConfigValidationError("Config file must contain a JSON object")

    return validate_config(config, config_path, custom_presets, defaults)


def detect_mode(input_path: Path) -> str:
    """
    Auto-detect processing mode based on input path.

    Returns:
        Mode string: "image" or "folder"
    """
    if input_path.is_dir():
        return "folder"
    ext = input_path.suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    raise ConfigValidationError(f"Cannot determine mode for file extension: {ext}")


def build_render_params(config: Dict[str, Any],
                        custom_presets: Optional[Dict[str, Dict]] = None) -> RenderParams:
    """
    Turn a validated config into render parameters. A preset is applied first;
    explicit "layers" / "gradient" / "ink_bleed" entries override it.
    """
    params = RenderParams()
    preset_name = config.get("preset")
    if preset_name:
        preset = (custom_presets or {}).get(preset_name) or PRESETS[preset_name]
        params = params_from_preset(preset, params)

    if config.get("gradient"):
        params = replace(params, gradient=gradient_from_dict(config["gradient"]))
    elif config.get("layers"):
        params = replace(params, gradient=None,
                         layers=tuple(layer_from_dict(layer) for layer in config["layers"]))

    adj = config["adjustments"]
    bleed = config["ink_bleed"]
    ink_bleed = InkBleedSettings(
        enabled=bool(bleed["enabled"]),
        amount=float(bleed["amount"]),
        roughness=float(bleed["roughness"]),
    )
    if preset_name and not ink_bleed.enabled:
        # Presets may carry their own bleed
        ink_bleed = params.ink_bleed
    return replace(
        params,
        brightness=float(adj["brightness"]),
        contrast=float(adj["contrast"]),
        invert=bool(adj["invert"]),
        image_scale=float(adj["image_scale"]),
        ink_bleed=ink_bleed,
        background=config["background"],
        seed=config["seed"],
    )


def load_job_palette(config: Dict[str, Any]) -> Dict[str, PaletteEntry]:
    """The built-in palette, or the palette file the config points at."""
    if not config.get("palette"):
        return DEFAULT_PALETTE
    try:
        palette = load_palette_file(config["palette"])
    except (OSError, ValueError) as e:
        raise ConfigValidationError(f"Failed to load palette file: {e}")
    logger.info(f"Loaded palette: [cyan]{config['palette']}[/] ({len(palette)} colors)")
    return palette


# ==================== Image Processing ====================

def process_single_image(config: Dict[str, Any], params: RenderParams,
                         palette: Optional[Dict[str, PaletteEntry]] = None,
                         input_path: Optional[Path] = None,
                         output_path: Optional[Path] = None) -> bool:
    """
    Render one image and save it.

    Args:
        config: Validated configuration dictionary
        params: Render parameters built from the config
        palette: Ink table (built-in when None)
        input_path: Overrides config["input"] (used for folder batches)
        output_path: Overrides config["output"]

    Returns:
        True if successful, False otherwise
    """
    input_path = Path(input_path or config["input"])
    output_path = Path(output_path or config["output"])
    try:
        logger.info(f"Loading image: [cyan]{input_path.name}[/]")
        source = load_image_buffer(str(input_path))
        logger.info(f"Image size: [cyan]{source.width}x{source.height}[/]")

        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      console=console, transient=True) as progress:
            progress.add_task("Rendering screen print...", total=None)
            result = render(source, params, palette, workers=config.get("workers", 1))

        scale = config["export"]["scale"]
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Saving to: [cyan]{output_path}[/] (×{scale})")
        save_buffer(result, str(output_path), scale)

        size_kb = output_path.stat().st_size / 1024
        logger.info(f"[bold green]✓ Image saved successfully![/] ({size_kb:.1f} KB)")
        return True

    except (OSError, ValueError) as e:
        logger.error(f"Failed to process image: {e}", exc_info=True)
        return False


def process_folder(config: Dict[str, Any], params: RenderParams,
                   palette: Optional[Dict[str, PaletteEntry]] = None) -> bool:
    """
    Render every image in the input folder into the output folder, keeping
    file names.

    Returns:
        True if every image succeeded
    """
    input_dir = Path(config["input"])
    output_dir = Path(config["output"])
    files = sorted(p for p in input_dir.iterdir() if p.is_file() and validate_image_file(str(p)))
    if not files:
        logger.error(f"No images found in: {input_dir}")
        return False

    logger.info(f"Found [cyan]{len(files)}[/] images")
    output_dir.mkdir(parents=True, exist_ok=True)

    failed = []
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                  BarColumn(), TaskProgressColumn(), console=console) as progress:
        task = progress.add_task("Processing folder...", total=len(files))
        for path in files:
            progress.update(task, description=f"Processing {path.name}")
            if not process_single_image(config, params, palette, path, output_dir / path.name):
                failed.append(path.name)
            progress.advance(task)

    if failed:
        logger.error(f"{len(failed)} of {len(files)} images failed: {', '.join(failed)}")
    return not failed


def show_banner():
    """Display application banner."""
    banner = """
[bold cyan]╔═══════════════════════════════════════╗[/]
[bold cyan]║[/]     [bold white]Screenprint CLI[/] [dim]- v1.0[/]        [bold cyan]║[/]
[bold cyan]║[/]  Layered Halftone & Dither Prints   [bold cyan]║[/]
[bold cyan]╚═══════════════════════════════════════╝[/]
"""
    console.print(banner)


def show_help():
    """Display detailed help information."""
    help_text = """
[bold cyan]Screenprint CLI - Usage[/]

[bold]Basic Usage:[/]
  screenprint <job.json>                 Render with JSON job config
  screenprint --help                     Show this help
  screenprint --example-config           Generate example config
  screenprint --list-presets             List built-in and saved presets
  screenprint --recent                   List recently rendered outputs

[bold]Options:[/]
  --verbose, -v         Enable verbose output
  --quiet, -q           Suppress all but error messages
  --log-file FILE       Write log to file
  --settings FILE       User settings: defaults, palette file, custom presets (default: config.json)
  --save-preset NAME    Store the job's look as a custom preset after rendering

[bold]Examples:[/]
  # Render a poster with the bold preset
  screenprint jobs/poster.json

  # Batch render a folder with verbose output
  screenprint -v jobs/folder.json
"""
    console.print(help_text)

    console.print("  [bold]Dither Types:[/]")
    for mode, info in ALGORITHMS.items():
        console.print(f"    • [cyan]{mode.value}[/] [dim]- {info.description}[/]")

    console.print("\n  [bold]Blend Modes:[/]")
    console.print("    " + ", ".join(f"[cyan]{m}[/]" for m in VALID_BLEND_MODES))

    console.print("\n  [bold]Palette Colors:[/]")
    for key, entry in DEFAULT_PALETTE.items():
        console.print(f"    • [cyan]{key}[/] {entry.hex}")
    console.print()


def show_presets(custom_presets: Optional[Dict[str, Dict]] = None):
    """List built-in presets, then saved ones."""
    console.print("\n[bold cyan]Built-in Presets:[/]")
    for key, preset in PRESETS.items():
        console.print(f"  • [cyan]{key}[/] [dim]- {preset.get('description', '')}[/]")
    if custom_presets:
        console.print("\n[bold cyan]Custom Presets:[/]")
        for key, preset in custom_presets.items():
            console.print(f"  • [cyan]{key}[/] [dim]- {preset.get('description', '')}[/]")
    console.print()


def show_recent(files: List[str]):
    """List recently rendered outputs, newest first."""
    if not files:
        console.print("\n[dim]No recent renders.[/]\n")
        return
    console.print("\n[bold cyan]Recent Renders:[/]")
    for path in files:
        info = get_image_info(path)
        size = f"{info['width']}x{info['height']}" if info else "unreadable"
        console.print(f"  • [cyan]{path}[/] [dim]({size})[/]")
    console.print()


def generate_example_config():
    """Generate and print an example configuration file."""
    example = {
        "_comment": "Screenprint CLI job configuration",
        "input": "path/to/input.png",
        "output": "path/to/output.png",
        "mode": "image",
        "_comment_preset": f"Optional; one of {list(PRESETS)} or a saved preset. Layers/gradient below override it",
        "preset": None,
        "layers": [
            {
                "color_key": "festival",
                "dither_type": "halftone_circle",
                "threshold": 0.45,
                "scale": 6,
                "angle": 15,
                "offset_x": -8,
                "offset_y": -8,
                "blend_mode": "multiply",
                "opacity": 1.0
            },
            {
                "color_key": "hearth",
                "dither_type": "halftone_circle",
                "threshold": 0.5,
                "scale": 6,
                "angle": 75,
                "offset_x": 8,
                "offset_y": 8,
                "blend_mode": "multiply",
                "opacity": 1.0
            }
        ],
        "_comment_gradient": "Set to an object like {\"stops\": [\"hearth\", \"threshold\"], \"dither_type\": \"none\"} for gradient mode",
        "gradient": None,
        "adjustments": {
            "brightness": 0.0,
            "contrast": 0.0,
            "invert": False,
            "image_scale": 1.0
        },
        "ink_bleed": {
            "enabled": False,
            "amount": 0.5,
            "roughness": 0.5
        },
        "background": "#ffffff",
        "seed": None,
        "export": {
            "scale": 1
        }
    }

    example_json = json.dumps(example, indent=4)

    console.print("\n[bold cyan]Example Configuration:[/]\n")
    console.print(Panel(example_json, title="job.json", border_style="cyan"))
    console.print("\n[dim]Save this to a .json file and modify as needed.[/]\n")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Screenprint CLI - Layered Halftone & Dither Prints",
        add_help=False  # We'll handle help ourselves
    )

    parser.add_argument('config', nargs='?', help='Path to JSON job configuration file')
    parser.add_argument('--help', '-h', action='store_true', help='Show help')
    parser.add_argument('--example-config', action='store_true', help='Generate example config')
    parser.add_argument('--list-presets', action='store_true', help='List presets')
    parser.add_argument('--recent', action='store_true', help='List recent renders')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Quiet mode (errors only)')
    parser.add_argument('--log-file', type=str, help='Log to file')
    parser.add_argument('--settings', type=str, default='config.json', help='User settings file')
    parser.add_argument('--save-preset', type=str, help='Save the job as a custom preset')

    args = parser.parse_args()

    if args.help:
        show_banner()
        show_help()
        sys.exit(0)

    if args.example_config:
        show_banner()
        generate_example_config()
        sys.exit(0)

    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    settings = ConfigManager(args.settings)
    custom_presets = settings.get_custom_presets()

    if args.list_presets:
        show_presets(custom_presets)
        sys.exit(0)

    if args.recent:
        show_recent(settings.get_recent_files())
        sys.exit(0)

    if not args.quiet:
        show_banner()

    if not args.config:
        console.print("[bold red]Error:[/] No configuration file specified.\n")
        console.print("Usage: screenprint <job.json>")
        console.print("       screenprint --help\n")
        sys.exit(1)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    logger.info(f"Loading configuration from: [cyan]{config_path}[/]")

    try:
        config = load_config(config_path, custom_presets, settings.job_defaults())
        if not config["mode"]:
            config["mode"] = detect_mode(Path(config["input"]))
            logger.info(f"Auto-detected mode: [cyan]{config['mode']}[/]")
        palette = load_job_palette(config)
        params = build_render_params(config, custom_presets)
    except ConfigValidationError as e:
        logger.error(f"[bold red]{e}[/]")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"[bold red]Invalid render settings:[/] {e}")
        sys.exit(1)

    logger.info("[green]✓[/] Configuration validated")

    logger.info(f"Input:  [cyan]{config['input']}[/]")
    logger.info(f"Output: [cyan]{config['output']}[/]")
    logger.info(f"Mode:   [cyan]{config['mode']}[/]")
    if params.gradient_enabled:
        logger.info(f"Gradient: [yellow]{' → '.join(params.gradient.stops)}[/] "
                    f"({DitherMode.parse(params.gradient.dither_type).value})")
    else:
        for i, layer in enumerate(params.layers, 1):
            logger.info(f"Layer {i}: [yellow]{layer.color_key}[/] {layer.dither_type.value} "
                        f"({layer.blend_mode.value}, offset {layer.offset_x},{layer.offset_y})")
    if params.ink_bleed.active:
        logger.info(f"Ink bleed: [yellow]{params.ink_bleed.amount}[/] (roughness {params.ink_bleed.roughness})")
    else:
        logger.info("Ink bleed: [dim]disabled[/]")

    logger.info("")

    if config["mode"] == "image":
        success = process_single_image(config, params, palette)
    else:
        success = process_folder(config, params, palette)

    if success:
        settings.add_recent_file(config["output"])
        settings.save()

    if success and args.save_preset:
        key = settings.save_custom_preset(args.save_preset, preset_from_params(params, args.save_preset))
        logger.info(f"[green]✓[/] Saved preset [cyan]{key}[/]")

    if success:
        logger.info("")
        logger.info("[bold green]✓ Processing complete![/]")
        sys.exit(0)
    else:
        logger.error("")
        logger.error("[bold red]✗ Processing failed![/]")
        sys.exit(1)


if __name__ == "__main__":
    main()
