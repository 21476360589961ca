"""Tests for screenprint_cli."""

import json

import pytest
from PIL import Image

from config_manager import ConfigManager
from dithering_lib import DitherMode
from screenprint_cli import (
    ConfigValidationError,
    build_render_params,
    detect_mode,
    load_config,
    main,
    process_folder,
    process_single_image,
    validate_config,
)


def write_job(tmp_path, job):
    path = tmp_path / "job.json"
    path.write_text(json.dumps(job))
    return path


def test_minimal_config_gets_defaults(tmp_path, image_file):
    config = validate_config({"input": "input.png", "output": "out/result.png"}, tmp_path / "job.json")
    assert config["input"] == str(image_file.resolve())
    assert config["output"] == str((tmp_path / "out" / "result.png").resolve())
    assert config["adjustments"]["image_scale"] == 1.0
    assert config["ink_bleed"]["enabled"] is False
    assert config["export"]["scale"] == 1
    assert config["background"] == "#ffffff"


def test_every_problem_is_reported_at_once(tmp_path):
    bad = {
        "mode": "video",
        "preset": "sparkly",
        "layers": [{"dither_type": "zigzag", "blend_mode": "glow", "opacity": 3}],
        "adjustments": {"brightness": 2},
        "background": "#12",
        "seed": "abc",
        "export": {"scale": 3},
    }
    with pytest.raises(ConfigValidationError) as exc:
        validate_config(bad, tmp_path / "job.json")
    message = str(exc.value)
    for fragment in ("'input'", "'output'", "Invalid mode", "Unknown preset", "zigzag", "glow",
                     "layers[0].opacity", "adjustments.brightness", "background", "'seed'",
                     "export.scale"):
        assert fragment in message


def test_layer_count_is_checked(tmp_path, image_file):
    job = {"input": "input.png", "output": "o.png", "layers": [{}] * 5}
    with pytest.raises(ConfigValidationError, match="between 1 and 4"):
        validate_config(job, tmp_path / "job.json")


def test_gradient_needs_two_stops(tmp_path, image_file):
    job = {"input": "input.png", "output": "o.png", "gradient": {"stops": ["black"]}}
    with pytest.raises(ConfigValidationError, match="at least 2"):
        validate_config(job, tmp_path / "job.json")


def test_missing_input_file(tmp_path):
    with pytest.raises(ConfigValidationError, match="not found"):
        validate_config({"input": "nope.png", "output": "o.png"}, tmp_path / "job.json")


def test_invalid_json(tmp_path):
    path = tmp_path / "job.json"
    path.write_text("{ broken")
    with pytest.raises(ConfigValidationError, match="Invalid JSON"):
        load_config(path)


def test_custom_presets_are_valid_names(tmp_path, image_file):
    job = {"input": "input.png", "output": "o.png", "preset": "mine"}
    custom = {"mine": {"name": "MINE", "layers": [{"color_key": "rooted"}]}}
    config = validate_config(job, tmp_path / "job.json", custom)
    params = build_render_params(config, custom)
    assert params.layers[0].color_key == "rooted"


def test_detect_mode(tmp_path, image_file):
    assert detect_mode(image_file) == "image"
    assert detect_mode(tmp_path) == "folder"
    with pytest.raises(ConfigValidationError):
        detect_mode(tmp_path / "clip.mp4")


def test_explicit_layers_override_preset(tmp_path, image_file):
    job = {"input": "input.png", "output": "o.png", "preset": "cmyk",
           "layers": [{"color_key": "festival", "dither_type": "atkinson"}]}
    params = build_render_params(validate_config(job, tmp_path / "job.json"))
    assert len(params.layers) == 1
    assert params.layers[0].dither_type == DitherMode.ATKINSON


def test_preset_gradient_and_adjustments(tmp_path, image_file):
    job = {"input": "input.png", "output": "o.png", "preset": "duotone",
           "adjustments": {"contrast": 0.2, "invert": True}, "seed": 9}
    params = build_render_params(validate_config(job, tmp_path / "job.json"))
    assert params.gradient_enabled
    assert params.contrast == pytest.approx(0.2)
    assert params.invert
    assert params.seed == 9


def test_config_ink_bleed_applies(tmp_path, image_file):
    job = {"input": "input.png", "output": "o.png",
           "ink_bleed": {"enabled": True, "amount": 0.8}}
    params = build_render_params(validate_config(job, tmp_path / "job.json"))
    assert params.ink_bleed.active
    assert params.ink_bleed.amount == pytest.approx(0.8)
    assert params.ink_bleed.roughness == pytest.approx(0.5)


def test_process_single_image_writes_scaled_output(tmp_path, image_file):
    job = {"input": "input.png", "output": "out/print.png", "preset": "bold", "export": {"scale": 2}}
    config = validate_config(job, tmp_path / "job.json")
    assert process_single_image(config, build_render_params(config))
    with Image.open(tmp_path / "out" / "print.png") as img:
        assert img.size == (32, 24)


def test_process_folder(tmp_path, image_file):
    Image.new("RGB", (5, 5), (10, 200, 30)).save(tmp_path / "second.jpg")
    (tmp_path / "notes.txt").write_text("skip me")
    job = {"input": ".", "output": "prints"}
    config = validate_config(job, tmp_path / "job.json")
    assert process_folder(config, build_render_params(config))
    assert sorted(p.name for p in (tmp_path / "prints").iterdir()) == ["input.png", "second.jpg"]


def test_main_renders_job(tmp_path, image_file, monkeypatch):
    job = write_job(tmp_path, {"input": "input.png", "output": "print.png", "preset": "retro"})
    settings = tmp_path / "settings.json"
    monkeypatch.setattr("sys.argv", ["screenprint", "-q", "--settings", str(settings),
                                     "--save-preset", "Retro Copy", str(job)])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 0
    assert (tmp_path / "print.png").exists()
    assert "retro_copy" in json.loads(settings.read_text())["custom_presets"]


def test_main_exits_on_invalid_config(tmp_path, image_file, monkeypatch):
    job = write_job(tmp_path, {"input": "input.png"})
    monkeypatch.setattr("sys.argv", ["screenprint", "-q", "--settings",
                                     str(tmp_path / "settings.json"), str(job)])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 1


def test_stored_defaults_fill_gaps_in_the_job(tmp_path, image_file):
    settings = ConfigManager(str(tmp_path / "settings.json"))
    settings.set("defaults", "contrast", value=0.3)
    settings.set("defaults", "background", value="#000000")
    settings.set("defaults", "export_scale", value=2)
    job = {"input": "input.png", "output": "o.png", "adjustments": {"brightness": 0.1}}
    config = validate_config(job, tmp_path / "job.json", defaults=settings.job_defaults())
    assert config["adjustments"]["brightness"] == 0.1
    assert config["adjustments"]["contrast"] == 0.3
    assert config["background"] == "#000000"
    assert config["export"]["scale"] == 2


def test_job_values_win_over_stored_defaults(tmp_path, image_file):
    settings = ConfigManager(str(tmp_path / "settings.json"))
    settings.set("defaults", "preset", value="bold")
    job = {"input": "input.png", "output": "o.png", "preset": "retro", "background": "#ff0000"}
    config = validate_config(job, tmp_path / "job.json", defaults=settings.job_defaults())
    assert config["preset"] == "retro"
    assert config["background"] == "#ff0000"


def test_bad_stored_default_is_reported(tmp_path, image_file):
    settings = ConfigManager(str(tmp_path / "settings.json"))
    settings.set("defaults", "export_scale", value=3)
    job = {"input": "input.png", "output": "o.png"}
    with pytest.raises(ConfigValidationError, match="export.scale"):
        validate_config(job, tmp_path / "job.json", defaults=settings.job_defaults())


def test_folder_mode_renders_only_image_files(tmp_path, image_file):
    (tmp_path / "clip.mp4").write_text("x")
    config = validate_config({"input": ".", "output": "prints"}, tmp_path / "job.json")
    assert process_folder(config, build_render_params(config))
    assert [p.name for p in (tmp_path / "prints").iterdir()] == ["input.png"]


def test_main_records_recent_output(tmp_path, image_file, monkeypatch, capsys):
    job = write_job(tmp_path, {"input": "input.png", "output": "print.png"})
    settings = tmp_path / "settings.json"
    monkeypatch.setattr("sys.argv", ["screenprint", "-q", "--settings", str(settings), str(job)])
    with pytest.raises(SystemExit):
        main()
    assert ConfigManager(str(settings)).get_recent_files() == [str((tmp_path / "print.png").resolve())]

    monkeypatch.setattr("sys.argv", ["screenprint", "--settings", str(settings), "--recent"])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 0
    assert "16x12" in capsys.readouterr().out
