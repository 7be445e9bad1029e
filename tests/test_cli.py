import json

import src.cli as cli_module
from src.cli import build_parser, run_cli
from src.errors import ConfigurationError
from src.services.metrics import NullMetrics
from tests.stubs.config_stub import make_config
from tests.stubs.pipeline_fakes import FakeOcrClient, make_pdf


def _outcome(out: str) -> dict:
    return json.loads(out[out.index("{\n"):])


def test_parser_requires_subcommand():
    args = build_parser().parse_args(["ingest", "book.pdf", "--project", "saga", "--no-tags"])
    assert args.command == "ingest"
    assert args.project_id == "saga"
    assert args.no_tags is True


def test_ingest_to_local_directory(tmp_path, capsys):
    source = tmp_path / "book.pdf"
    source.write_bytes(make_pdf(4))
    out_dir = tmp_path / "out"

    code = run_cli(
        [
            "ingest",
            str(source),
            "--project",
            "saga",
            "--ingestion-id",
            "vol-1",
            "--storage",
            "local",
            "--output-dir",
            str(out_dir),
        ],
        cfg=make_config(),
        ocr_client=FakeOcrClient(image_size=(800, 600)),
    )

    assert code == 0
    outcome = _outcome(capsys.readouterr().out)
    assert outcome["ok"] is True
    assert outcome["prefix"] == "corpus/saga/vol-1"
    manifest_path = out_dir / "corpus" / "saga" / "vol-1" / "manifest.json"
    manifest = json.loads(manifest_path.read_text())
    assert manifest["pageCount"] == 4
    assert manifest["pageImagesCount"] == 4
    assert outcome["manifestUrl"] == manifest_path.resolve().as_uri()
    assert (out_dir / "corpus" / "saga" / "vol-1" / "pages" / "page-004.png").is_file()


def test_no_tags_skips_generator_even_with_key(tmp_path, capsys):
    source = tmp_path / "book.pdf"
    source.write_bytes(make_pdf(2))
    code = run_cli(
        ["ingest", str(source), "--ingestion-id", "v", "--no-tags"],
        cfg=make_config(openai_api_key="sk-test"),
        ocr_client=FakeOcrClient(),
    )
    assert code == 0
    outcome = _outcome(capsys.readouterr().out)
    assert outcome["ok"] is True
    assert outcome["prefix"] == "corpus/default/v"


def test_failure_exits_non_zero(tmp_path, capsys):
    code = run_cli(
        ["ingest", str(tmp_path / "absent.pdf")],
        cfg=make_config(),
        ocr_client=FakeOcrClient(),
    )
    assert code == 1
    assert '"kind": "source_fetch_error"' in capsys.readouterr().out


def test_configuration_error_reported_as_outcome(capsys):
    code = run_cli(["ingest", "book.pdf"], cfg=make_config(doc_ai_processor_id=""))
    assert code == 1
    assert '"kind": "configuration_error"' in capsys.readouterr().out


def test_cli_enables_local_sources_and_skips_metrics(monkeypatch, capsys):
    captured = {}

    def _fake_build(cfg, **kwargs):
        captured.update(kwargs)
        raise ConfigurationError("stop here")

    monkeypatch.setattr(cli_module, "build_pipeline", _fake_build)
    assert run_cli(["ingest", "book.pdf"], cfg=make_config()) == 1
    assert captured["allow_local"] is True
    assert isinstance(captured["metrics"], NullMetrics)
    capsys.readouterr()
