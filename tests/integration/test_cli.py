import logging
from dataclasses import replace

import pytest

from shadowapi.cli import apply_overrides, build_parser, main
from shadowapi.session import ShadowSession

SCRIPT = 'const a = "/api/a"; const b = "/api/b";'


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


@pytest.fixture
def data_dir(tmp_path, isolated_config, make_request, make_response):
    data_dir = tmp_path / "cli"
    config = replace(isolated_config, storage=replace(isolated_config.storage, base_dir=data_dir))
    with ShadowSession(config) as session:
        session.engine.on_response(make_request(), make_response(SCRIPT))
    return data_dir


def test_list_export_clear(tmp_path, data_dir, capsys):
    out = tmp_path / "paths.txt"
    assert main(["--data-dir", str(data_dir), "export", "-o", str(out)]) == 0
    assert out.read_text(encoding="utf-8") == "/api/a\n/api/b\n"

    assert main(["--data-dir", str(data_dir), "list"]) == 0
    listing = capsys.readouterr().out
    assert "  a.com" in listing
    assert "    /api/a [Shadow]" in listing

    assert main(["--data-dir", str(data_dir), "clear"]) == 0
    assert main(["--data-dir", str(data_dir), "export"]) == 0
    assert capsys.readouterr().out == ""


def test_proxy_flags_override_config(tmp_path, isolated_config):
    patterns = tmp_path / "patterns.txt"
    patterns.write_text("(/rest/[a-z]+)\n", encoding="utf-8")
    args = build_parser().parse_args(
        ["proxy", "--port", "9999", "--scope-only", "--patterns", str(patterns)]
    )
    config = apply_overrides(args, isolated_config)
    assert config.proxy.listen_port == 9999
    assert config.discovery.scope_only is True
    assert config.discovery.fragments == ("(/rest/[a-z]+)",)


def test_missing_patterns_file_exits_with_error(tmp_path, capsys):
    code = main(["proxy", "--patterns", str(tmp_path / "missing.txt")])
    assert code == 2
    assert "Configured file does not exist" in capsys.readouterr().err
