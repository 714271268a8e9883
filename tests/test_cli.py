import json

import pytest

from sugarcane_scan import cli
from sugarcane_scan import client as client_module

from conftest import encode_jpeg, make_flat_image


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv('LEAF_MODEL_PATH', str(tmp_path / 'missing.joblib'))
    monkeypatch.setenv('SCAN_DATABASE', str(tmp_path / 'scans.db'))
    monkeypatch.setenv('SCAN_BLOB_ROOT', str(tmp_path / 'blobs'))
    monkeypatch.setattr(cli, 'setup_logging', lambda *args, **kwargs: None)


@pytest.fixture
def leaf_path(tmp_path, leaf_jpeg):
    path = tmp_path / 'leaf.jpg'
    path.write_bytes(leaf_jpeg)
    return str(path)


def test_validate_command_json(leaf_path, capsys):
    assert cli.main(['validate', leaf_path, '--json']) == 0
    result = json.loads(capsys.readouterr().out)
    assert result['is_leaf'] is True
    assert result['method'] == 'heuristic'


def test_validate_command_rejects_non_leaf(tmp_path, capsys):
    path = tmp_path / 'grey.jpg'
    path.write_bytes(encode_jpeg(make_flat_image(128)))
    assert cli.main(['validate', str(path)]) == 1
    assert 'Is Leaf: False' in capsys.readouterr().out


def test_quality_command(tmp_path, capsys):
    path = tmp_path / 'dark.jpg'
    path.write_bytes(encode_jpeg(make_flat_image(10)))
    assert cli.main(['quality', str(path)]) == 1
    assert 'too dark' in capsys.readouterr().out


def test_history_against_unreachable_server(capsys):
    assert cli.main(['history', '--server', 'http://127.0.0.1:9']) == 1
    assert 'Failed to fetch scans' in capsys.readouterr().out


def test_scan_command_uploads(leaf_path, flask_session, monkeypatch, capsys):
    monkeypatch.setattr(client_module.requests, 'Session', lambda: flask_session)

    assert cli.main(['scan', leaf_path, '--seed', '1', '--notes', 'edge row']) == 0
    out = capsys.readouterr().out
    assert 'Saved as scan 1' in out


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        cli.main(['explode'])
